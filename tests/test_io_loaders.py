"""Unit tests for JSON input loader helpers and table writers."""

from __future__ import annotations
__author__ = "hfcand developers"

import json
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from hfcand import ConfigurationError, MatchResult, McParticleTable, StructuralInconsistency
from hfcand.io import (
    load_collisions_json,
    load_config_json,
    load_mc_particles_json,
    load_tracks_json,
    load_triplets_json,
    write_match_table,
)


def _write(tmpdir: str, name: str, payload) -> Path:
    path = Path(tmpdir) / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestIOLoaders(unittest.TestCase):
    """Validate parsing for track, collision, triplet, MC and config JSON inputs."""

    def test_load_tracks_accepts_packed_and_nested_covariance(self) -> None:
        """Track loader should read flat and `state`-nested payloads alike."""
        nested_cov = [[0.01 if i == j else 0.0 for j in range(6)] for i in range(6)]
        payload = {
            "tracks": [
                {
                    "track_id": 4,
                    "collision_id": 0,
                    "x": 0.1,
                    "y": 0.2,
                    "z": 0.3,
                    "px": 1.0,
                    "py": 0.0,
                    "pz": 0.5,
                    "charge": -1,
                    "cov": [float(i) for i in range(21)],
                    "mc_particle_id": 12,
                },
                {
                    "collision_id": 1,
                    "state": {"x": 0.0, "y": 0.0, "z": 0.0, "px": 0.0, "py": 1.0, "pz": 0.0},
                    "charge": 1,
                    "cov": nested_cov,
                },
            ]
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            tracks = load_tracks_json(_write(tmpdir, "tracks.json", payload))

        self.assertEqual(len(tracks), 2)
        t0, t1 = tracks
        self.assertEqual(t0.track_id, 4)
        self.assertEqual(t0.charge, -1)
        self.assertEqual(t0.mc_particle_id, 12)
        self.assertEqual(t0.cov21[20], 20.0)
        self.assertEqual(t1.track_id, 1)
        self.assertEqual(t1.mc_particle_id, -1)
        self.assertEqual(len(t1.cov21), 21)
        self.assertAlmostEqual(t1.cov21[0], 0.01, places=12)
        self.assertAlmostEqual(t1.cov21[1], 0.0, places=12)
        self.assertAlmostEqual(t1.cov21[2], 0.01, places=12)

    def test_load_tracks_rejects_bad_covariance(self) -> None:
        payload = {
            "tracks": [
                {"collision_id": 0, "x": 0, "y": 0, "z": 0, "px": 1, "py": 0, "pz": 0, "charge": 1, "cov": [1.0] * 5}
            ]
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                load_tracks_json(_write(tmpdir, "tracks.json", payload))

    def test_load_collisions(self) -> None:
        payload = {
            "collisions": [
                {"collision_id": 3, "x": 0.0, "y": 0.01, "z": -1.0, "cov": [1e-6, 0.0, 1e-6, 0.0, 0.0, 4e-6]},
                {"x": 0.0, "y": 0.0, "z": 2.0, "cov": [[1e-6, 0.0, 0.0], [0.0, 1e-6, 0.0], [0.0, 0.0, 1e-6]]},
            ]
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            pvs = load_collisions_json(_write(tmpdir, "collisions.json", payload))
        self.assertEqual([pv.collision_id for pv in pvs], [3, 1])
        self.assertEqual(pvs[0].cov6[5], 4e-6)
        self.assertEqual(pvs[1].position, (0.0, 0.0, 2.0))

    def test_load_triplets_accepts_objects_and_lists(self) -> None:
        payload = {"triplets": [{"index": 9, "prong_ids": [0, 1, 2], "hf_flag": 2}, [3, 4, 5]]}
        with tempfile.TemporaryDirectory() as tmpdir:
            triplets = load_triplets_json(_write(tmpdir, "triplets.json", payload))
        self.assertEqual(triplets[0].index, 9)
        self.assertEqual(triplets[0].hf_flag, 2)
        self.assertEqual(triplets[1].index, 1)
        self.assertEqual(triplets[1].prong_ids, (3, 4, 5))

    def test_load_triplets_requires_three_prongs(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                load_triplets_json(_write(tmpdir, "triplets.json", {"triplets": [[0, 1]]}))

    def test_load_mc_particles(self) -> None:
        payload = {
            "mc_particles": [
                {"pdg_code": 4122, "daughter_first": 1, "daughter_last": 1},
                {"pdg_code": 2212, "mother_index": 0, "px": 1.5},
            ]
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            table = load_mc_particles_json(_write(tmpdir, "mc.json", payload))
        self.assertIsInstance(table, McParticleTable)
        self.assertEqual(len(table), 2)
        self.assertEqual(table[1].mother_index, 0)
        self.assertEqual(table[1].px, 1.5)
        self.assertEqual(list(table[0].daughter_range()), [1])

    def test_load_mc_particles_rejects_out_of_order_index(self) -> None:
        payload = {"mc_particles": [{"index": 1, "pdg_code": 211}]}
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(StructuralInconsistency):
                load_mc_particles_json(_write(tmpdir, "mc.json", payload))

    def test_load_config_accepts_framework_option_names(self) -> None:
        payload = {"d_bz": -5.0, "b_propdca": False, "d_maxr": 50.0, "fitter": "dca", "prong_species": [2212, -321, 211]}
        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config_json(_write(tmpdir, "config.json", payload))
        self.assertEqual(config.bz, -5.0)
        self.assertFalse(config.propagate_to_pca)
        self.assertEqual(config.max_r, 50.0)
        self.assertEqual(config.fitter, "dca")
        self.assertEqual(config.prong_species, (2212, -321, 211))

    def test_load_config_rejects_unknown_key(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigurationError):
                load_config_json(_write(tmpdir, "config.json", {"d_bzz": 5.0}))


class TestTableWriters(unittest.TestCase):
    """Validate tabular export of match results."""

    def test_write_match_table_csv(self) -> None:
        results = [MatchResult(flag=2, origin=1, channel=3, item_index=0), MatchResult(item_index=1)]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "matches.csv"
            write_match_table(path, results)
            df = pd.read_csv(path)
        self.assertEqual(list(df.columns), ["item_index", "flag", "origin", "channel"])
        self.assertEqual(df["flag"].tolist(), [2, 0])
        self.assertEqual(df["channel"].tolist(), [3, 0])

    def test_write_rejects_unknown_suffix(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                write_match_table(Path(tmpdir) / "matches.txt", [])


if __name__ == "__main__":
    unittest.main()
