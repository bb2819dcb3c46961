"""Unit tests for decay-chain truth matching."""

from __future__ import annotations
__author__ = "hfcand developers"

import unittest

from hfcand import (
    THREE_PRONG_HYPOTHESES,
    ConfigurationError,
    DecayHypothesis,
    DecayType,
    McParticle,
    McParticleTable,
    OriginType,
    StructuralInconsistency,
    match_generated,
    match_generated_particles,
    match_reconstructed,
)
from hfcand.mcmatch import find_mother_pdg, get_daughters, resolve_channel, validate_hypotheses
from hfcand.pid import is_bottom_flavour, particle_hypothesis_from_name, particle_hypothesis_from_pdg


def _record(*entries: tuple[int, int, int, int]) -> McParticleTable:
    """Build a record from `(pdg_code, mother, daughter_first, daughter_last)` rows."""
    return McParticleTable(
        [
            McParticle(index=i, pdg_code=pdg, mother_index=mother, daughter_first=first, daughter_last=last)
            for i, (pdg, mother, first, last) in enumerate(entries)
        ]
    )


def _direct_lc(sign: int = 1) -> McParticleTable:
    return _record(
        (sign * 4122, -1, 1, 3),
        (sign * 2212, 0, -1, -1),
        (sign * -321, 0, -1, -1),
        (sign * 211, 0, -1, -1),
    )


LC_FLAG = 1 << DecayType.LC_TO_P_K_PI


class TestReconstructedMatching(unittest.TestCase):
    """Validate flag, channel and origin for reconstructed triplets."""

    def test_direct_lc_decay(self) -> None:
        res = match_reconstructed(_direct_lc(), [1, 2, 3], item_index=7)
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.channel, 0)
        self.assertEqual(res.origin, OriginType.PROMPT)
        self.assertEqual(res.mother_index, 0)
        self.assertEqual(res.item_index, 7)

    def test_prong_order_does_not_matter(self) -> None:
        res = match_reconstructed(_direct_lc(), [3, 1, 2])
        self.assertEqual(res.flag, LC_FLAG)

    def test_charge_conjugate_decay_flips_sign(self) -> None:
        res = match_reconstructed(_direct_lc(sign=-1), [1, 2, 3])
        self.assertEqual(res.flag, -LC_FLAG)
        self.assertEqual(res.sign, -1)
        self.assertEqual(res.origin, OriginType.PROMPT)

    def test_mixed_charge_conjugation_is_rejected(self) -> None:
        table = _record(
            (4122, -1, 1, 3),
            (2212, 0, -1, -1),
            (321, 0, -1, -1),
            (211, 0, -1, -1),
        )
        res = match_reconstructed(table, [1, 2, 3])
        self.assertEqual((res.flag, res.origin, res.channel), (0, 0, 0))

    def test_kstar_resonance_sets_channel(self) -> None:
        table = _record(
            (4122, -1, 1, 2),
            (2212, 0, -1, -1),
            (313, 0, 3, 4),
            (-321, 2, -1, -1),
            (211, 2, -1, -1),
        )
        res = match_reconstructed(table, [1, 3, 4])
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.channel, 1)

    def test_delta_resonance_sets_channel(self) -> None:
        table = _record(
            (4122, -1, 1, 2),
            (2224, 0, 3, 4),
            (-321, 0, -1, -1),
            (2212, 1, -1, -1),
            (211, 1, -1, -1),
        )
        res = match_reconstructed(table, [3, 2, 4])
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.channel, 2)

    def test_lambda1520_resonance_sets_channel(self) -> None:
        table = _record(
            (4122, -1, 1, 2),
            (3124, 0, 3, 4),
            (211, 0, -1, -1),
            (2212, 1, -1, -1),
            (-321, 1, -1, -1),
        )
        res = match_reconstructed(table, [3, 4, 2])
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.channel, 3)

    def test_bottom_ancestor_gives_non_prompt(self) -> None:
        table = _record(
            (5122, -1, 1, 1),
            (4212, 0, 2, 2),
            (4122, 1, 3, 5),
            (2212, 2, -1, -1),
            (-321, 2, -1, -1),
            (211, 2, -1, -1),
        )
        res = match_reconstructed(table, [3, 4, 5])
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.origin, OriginType.NON_PROMPT)

    def test_non_bottom_ancestors_keep_non_prompt(self) -> None:
        """Extra ancestors above the bottom hadron never restore prompt origin."""
        table = _record(
            (92, -1, 1, 1),
            (521, 0, 2, 2),
            (4122, 1, 3, 5),
            (2212, 2, -1, -1),
            (-321, 2, -1, -1),
            (211, 2, -1, -1),
        )
        res = match_reconstructed(table, [3, 4, 5])
        self.assertEqual(res.origin, OriginType.NON_PROMPT)

    def test_conjugate_bottom_ancestor_gives_non_prompt(self) -> None:
        table = _record(
            (-5122, -1, 1, 1),
            (-4212, 0, 2, 2),
            (-4122, 1, 3, 5),
            (-2212, 2, -1, -1),
            (321, 2, -1, -1),
            (-211, 2, -1, -1),
        )
        res = match_reconstructed(table, [3, 4, 5])
        self.assertEqual(res.flag, -LC_FLAG)
        self.assertEqual(res.origin, OriginType.NON_PROMPT)

    def test_nucleus_ancestor_keeps_prompt(self) -> None:
        """Fe-56 carries a 5 in its digits but holds no bottom quark."""
        table = _record(
            (1000260560, -1, 1, 1),
            (4122, 0, 2, 4),
            (2212, 1, -1, -1),
            (-321, 1, -1, -1),
            (211, 1, -1, -1),
        )
        res = match_reconstructed(table, [2, 3, 4])
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.origin, OriginType.PROMPT)

    def test_conjugate_kstar_resonance_sets_channel(self) -> None:
        table = _record(
            (-4122, -1, 1, 2),
            (-2212, 0, -1, -1),
            (-313, 0, 3, 4),
            (321, 2, -1, -1),
            (-211, 2, -1, -1),
        )
        res = match_reconstructed(table, [1, 3, 4])
        self.assertEqual(res.flag, -LC_FLAG)
        self.assertEqual(res.channel, 1)

    def test_wrong_daughters_give_no_match(self) -> None:
        table = _record(
            (4122, -1, 1, 3),
            (2212, 0, -1, -1),
            (-321, 0, -1, -1),
            (321, 0, -1, -1),
        )
        res = match_reconstructed(table, [1, 2, 3])
        self.assertFalse(res.matched)
        self.assertEqual((res.flag, res.origin, res.channel), (0, 0, 0))

    def test_extra_daughter_gives_no_match(self) -> None:
        table = _record(
            (4122, -1, 1, 4),
            (2212, 0, -1, -1),
            (-321, 0, -1, -1),
            (211, 0, -1, -1),
            (111, 0, -1, -1),
        )
        self.assertFalse(match_reconstructed(table, [1, 2, 3]).matched)

    def test_unlinked_or_repeated_prong_gives_no_match(self) -> None:
        self.assertFalse(match_reconstructed(_direct_lc(), [1, -1, 3]).matched)
        self.assertFalse(match_reconstructed(_direct_lc(), [1, 1, 3]).matched)

    def test_dplus_is_tried_before_lc(self) -> None:
        table = _record(
            (411, -1, 1, 3),
            (211, 0, -1, -1),
            (-321, 0, -1, -1),
            (211, 0, -1, -1),
        )
        res = match_reconstructed(table, [1, 2, 3])
        self.assertEqual(res.flag, 1 << DecayType.DPLUS_TO_PI_K_PI)

    def test_first_matching_hypothesis_wins(self) -> None:
        a = DecayHypothesis("A", DecayType.LC_TO_P_K_PI, 4122, (2212, -321, 211))
        b = DecayHypothesis("B", DecayType.XIC_TO_P_K_PI, 4122, (2212, -321, 211))
        self.assertEqual(match_reconstructed(_direct_lc(), [1, 2, 3], (a, b)).flag, a.bit)
        self.assertEqual(match_reconstructed(_direct_lc(), [1, 2, 3], (b, a)).flag, b.bit)

    def test_dangling_daughter_range_degrades_to_no_match(self) -> None:
        table = _record(
            (4122, -1, 1, 9),
            (2212, 0, -1, -1),
            (-321, 0, -1, -1),
            (211, 0, -1, -1),
        )
        with self.assertLogs("hfcand.mcmatch", level="WARNING"):
            res = match_reconstructed(table, [1, 2, 3])
        self.assertFalse(res.matched)


class TestGeneratedMatching(unittest.TestCase):
    """Validate classification of simulated particles by their own decay."""

    def test_generated_lc_is_flagged(self) -> None:
        results = match_generated_particles(_direct_lc())
        self.assertEqual([r.flag for r in results], [LC_FLAG, 0, 0, 0])
        self.assertEqual([r.item_index for r in results], [0, 1, 2, 3])
        self.assertEqual(results[0].origin, OriginType.PROMPT)

    def test_generated_antiparticle(self) -> None:
        res = match_generated(_direct_lc(sign=-1), 0)
        self.assertEqual(res.flag, -LC_FLAG)

    def test_generated_resonant_decay_carries_channel(self) -> None:
        table = _record(
            (4122, -1, 1, 2),
            (2212, 0, -1, -1),
            (313, 0, 3, 4),
            (-321, 2, -1, -1),
            (211, 2, -1, -1),
        )
        res = match_generated(table, 0)
        self.assertEqual(res.flag, LC_FLAG)
        self.assertEqual(res.channel, 1)

    def test_generated_conjugate_resonant_decay_carries_channel(self) -> None:
        table = _record(
            (-4122, -1, 1, 2),
            (-2212, 0, -1, -1),
            (-313, 0, 3, 4),
            (321, 2, -1, -1),
            (-211, 2, -1, -1),
        )
        res = match_generated(table, 0)
        self.assertEqual(res.flag, -LC_FLAG)
        self.assertEqual(res.channel, 1)

    def test_generated_and_reconstructed_agree(self) -> None:
        table = _direct_lc()
        self.assertEqual(match_generated(table, 0).flag, match_reconstructed(table, [1, 2, 3]).flag)

    def test_particle_without_daughters_is_unmatched(self) -> None:
        table = _record((4122, -1, -1, -1))
        self.assertFalse(match_generated(table, 0).matched)

    def test_cyclic_ancestry_degrades_to_no_match(self) -> None:
        table = _record(
            (4122, 4, 1, 3),
            (2212, 0, -1, -1),
            (-321, 0, -1, -1),
            (211, 0, -1, -1),
            (4212, 0, -1, -1),
        )
        with self.assertLogs("hfcand.mcmatch", level="WARNING"):
            results = match_generated_particles(table, n_workers=2)
        self.assertTrue(all(not r.matched for r in results))
        self.assertEqual([r.item_index for r in results], [0, 1, 2, 3, 4])

    def test_parallel_results_follow_record_order(self) -> None:
        table = _record(
            (4122, -1, 1, 3),
            (2212, 0, -1, -1),
            (-321, 0, -1, -1),
            (211, 0, -1, -1),
            (-4122, -1, 5, 7),
            (-2212, 4, -1, -1),
            (321, 4, -1, -1),
            (-211, 4, -1, -1),
        )
        serial = match_generated_particles(table)
        parallel = match_generated_particles(table, n_workers=3)
        self.assertEqual(serial, parallel)
        self.assertEqual(parallel[4].flag, -LC_FLAG)


class TestTraversal(unittest.TestCase):
    """Validate bounded ancestry and decay-tree walks."""

    def test_mother_search_respects_depth(self) -> None:
        table = _record(
            (4122, -1, 1, 1),
            (3124, 0, 2, 2),
            (2212, 1, -1, -1),
        )
        self.assertEqual(find_mother_pdg(table, 2, 4122, depth_max=1), (-1, 0))
        self.assertEqual(find_mother_pdg(table, 2, 4122, depth_max=2), (0, 1))
        self.assertEqual(find_mother_pdg(table, 2, -4122, accept_antiparticles=True), (0, -1))

    def test_mother_search_is_strict(self) -> None:
        self.assertEqual(find_mother_pdg(_direct_lc(), 0, 4122), (-1, 0))

    def test_daughters_stop_at_listed_codes_and_depth(self) -> None:
        table = _record(
            (4122, -1, 1, 2),
            (313, 0, 3, 4),
            (2212, 0, -1, -1),
            (-321, 1, -1, -1),
            (211, 1, -1, -1),
        )
        self.assertEqual(get_daughters(table, 0, depth_max=1), [1, 2])
        self.assertEqual(get_daughters(table, 0), [3, 4, 2])
        self.assertEqual(get_daughters(table, 0, final_pdgs=(313,)), [1, 2])
        self.assertEqual(get_daughters(table, 3), [])

    def test_channel_needs_two_direct_daughters(self) -> None:
        lc = THREE_PRONG_HYPOTHESES[1]
        self.assertEqual(resolve_channel(_direct_lc(), 0, lc.channels), 0)

    def test_daughter_range_with_one_bound(self) -> None:
        table = _record(
            (4122, -1, 1, -1),
            (2212, 0, -1, -1),
        )
        self.assertEqual(get_daughters(table, 0), [1])

    def test_decay_tree_cycle_is_reported(self) -> None:
        table = _record(
            (4122, -1, 1, 1),
            (313, 0, 0, 0),
        )
        with self.assertRaises(StructuralInconsistency):
            get_daughters(table, 0)

    def test_record_index_mismatch_is_rejected(self) -> None:
        with self.assertRaises(StructuralInconsistency):
            McParticleTable([McParticle(index=1, pdg_code=211)])


class TestSpeciesAndHypotheses(unittest.TestCase):
    """Validate species helpers and hypothesis-list checks."""

    def test_bottom_flavour_codes(self) -> None:
        for code in (5, -5, 511, -521, 531, 5122, -5232):
            self.assertTrue(is_bottom_flavour(code), code)
        for code in (4, 92, 411, 4122, 2212, 443, 1000260560, 1000050100):
            self.assertFalse(is_bottom_flavour(code), code)

    def test_mass_hypothesis_lookup(self) -> None:
        self.assertEqual(particle_hypothesis_from_name(" Kaon ").name, "K")
        self.assertEqual(particle_hypothesis_from_pdg(-2212).name, "p")
        with self.assertRaises(ConfigurationError):
            particle_hypothesis_from_name("muon")

    def test_duplicate_decay_type_is_rejected(self) -> None:
        lc = THREE_PRONG_HYPOTHESES[1]
        with self.assertRaises(ConfigurationError):
            validate_hypotheses((lc, lc))
        with self.assertRaises(ConfigurationError):
            match_generated_particles(_direct_lc(), ())


if __name__ == "__main__":
    unittest.main()
