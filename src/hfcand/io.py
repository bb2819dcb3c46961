"""Input/output helpers for JSON inputs and tabular result export."""

from __future__ import annotations
__author__ = "hfcand developers"

import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Sequence

from .config import CreatorConfig
from .errors import ConfigurationError
from .models import (
    Candidate3Prong,
    MatchResult,
    McParticle,
    McParticleTable,
    PrimaryVertex,
    TrackState,
    TrackTriplet,
)

# Option names used by the reconstruction framework, mapped to config fields.
_CONFIG_ALIASES = {
    "d_bz": "bz",
    "b_propdca": "propagate_to_pca",
    "d_maxr": "max_r",
    "d_maxdzini": "max_dz_ini",
    "d_minparamchange": "min_param_change",
    "d_minrelchi2change": "min_rel_chi2_change",
    "b_dovalplots": "do_validation_plots",
}


def load_tracks_json(path: str | Path) -> list[TrackState]:
    """Load track container JSON into `TrackState` objects."""
    data = _load_json(path)
    tracks_data = data.get("tracks")
    if not isinstance(tracks_data, list):
        raise ValueError("Input JSON must contain a list under key 'tracks'.")
    return [_parse_track_item(item=item, idx=idx, context=f"{path}") for idx, item in enumerate(tracks_data)]


def load_collisions_json(path: str | Path) -> list[PrimaryVertex]:
    """Load primary vertices from `collisions` (or `primary_vertices`) JSON."""
    data = _load_json(path)
    pvs_data = data.get("collisions", data.get("primary_vertices"))
    if not isinstance(pvs_data, list):
        raise ValueError("Collision JSON must contain a list under key 'collisions'.")
    return [_parse_primary_vertex_item(item=item, idx=idx, context=f"{path}") for idx, item in enumerate(pvs_data)]


def load_triplets_json(path: str | Path) -> list[TrackTriplet]:
    """Load track-index triplets proposed by the upstream combinatorics."""
    data = _load_json(path)
    triplets_data = data.get("triplets")
    if not isinstance(triplets_data, list):
        raise ValueError("Triplet JSON must contain a list under key 'triplets'.")
    out: list[TrackTriplet] = []
    for idx, item in enumerate(triplets_data):
        if isinstance(item, list):
            item = {"prong_ids": item}
        if not isinstance(item, dict):
            raise ValueError(f"Triplet entry at index {idx} must be an object or a list.")
        prong_ids = item.get("prong_ids")
        if not isinstance(prong_ids, list) or len(prong_ids) != 3:
            raise ValueError(f"Triplet entry at index {idx} must name exactly three prong ids.")
        out.append(
            TrackTriplet(
                index=int(item.get("index", idx)),
                prong_ids=(int(prong_ids[0]), int(prong_ids[1]), int(prong_ids[2])),
                hf_flag=int(item.get("hf_flag", 0)),
            )
        )
    return out


def load_mc_particles_json(path: str | Path) -> McParticleTable:
    """Load the simulated particle record into a read-only `McParticleTable`."""
    data = _load_json(path)
    particles_data = data.get("mc_particles")
    if not isinstance(particles_data, list):
        raise ValueError("MC JSON must contain a list under key 'mc_particles'.")
    particles: list[McParticle] = []
    for idx, item in enumerate(particles_data):
        if not isinstance(item, dict):
            raise ValueError(f"MC particle at index {idx} must be an object.")
        particles.append(
            McParticle(
                index=int(item.get("index", idx)),
                pdg_code=int(item["pdg_code"]),
                mother_index=int(item.get("mother_index", -1)),
                daughter_first=int(item.get("daughter_first", -1)),
                daughter_last=int(item.get("daughter_last", -1)),
                px=float(item.get("px", 0.0)),
                py=float(item.get("py", 0.0)),
                pz=float(item.get("pz", 0.0)),
                e=float(item.get("e", 0.0)),
            )
        )
    return McParticleTable(particles)


def load_config_json(path: str | Path) -> CreatorConfig:
    """Load a `CreatorConfig` from JSON.

    Accepts field names and the framework option names (`d_bz`, `b_propdca`,
    ...). Unknown keys are rejected so that typos fail at startup.
    """
    data = _load_json(path)
    known = {f.name for f in fields(CreatorConfig)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        name = _CONFIG_ALIASES.get(key, key)
        if name not in known:
            raise ConfigurationError(f"Unknown configuration key '{key}' in {path}.")
        kwargs[name] = tuple(int(x) for x in value) if name == "prong_species" else value
    return CreatorConfig(**kwargs)


def write_candidates_table(path: str | Path, candidates: Sequence[Candidate3Prong]) -> None:
    """Write candidate rows into Parquet/CSV/Pickle table."""
    _write_table(path, _candidate_rows(candidates))


def write_match_table(path: str | Path, results: Sequence[MatchResult]) -> None:
    """Write MC match results `(item_index, flag, origin, channel)` into a table."""
    rows = [
        {
            "item_index": res.item_index,
            "flag": res.flag,
            "origin": res.origin,
            "channel": res.channel,
        }
        for res in results
    ]
    _write_table(path, rows)


def _write_table(path: str | Path, rows: list[dict[str, Any]]) -> None:
    pd = _require_pandas()
    df = pd.DataFrame(rows)
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl")


def _candidate_rows(candidates: Sequence[Candidate3Prong]) -> list[dict[str, Any]]:
    """Flatten candidates into DataFrame-ready row dictionaries."""
    rows: list[dict[str, Any]] = []
    for cand in candidates:
        row: dict[str, Any] = {
            "triplet_index": cand.triplet_index,
            "collision_id": cand.collision_id,
            "pv_x": cand.pv_xyz[0],
            "pv_y": cand.pv_xyz[1],
            "pv_z": cand.pv_xyz[2],
            "sv_x": cand.sv_xyz[0],
            "sv_y": cand.sv_xyz[1],
            "sv_z": cand.sv_xyz[2],
            "px": cand.momentum[0],
            "py": cand.momentum[1],
            "pz": cand.momentum[2],
            "mass": cand.mass,
            "mass_error": cand.mass_error,
            "chi2": cand.chi2,
            "ndf": cand.ndf,
            "decay_length": cand.decay_length,
            "decay_length_xy": cand.decay_length_xy,
            "error_decay_length": cand.error_decay_length,
            "error_decay_length_xy": cand.error_decay_length_xy,
            "hf_flag": cand.hf_flag,
        }
        for idx, (pid, p, ip, ip_err) in enumerate(
            zip(
                cand.prong_ids,
                cand.prong_momenta,
                cand.impact_parameters,
                cand.impact_parameter_errors,
                strict=True,
            )
        ):
            row[f"prong{idx}_id"] = pid
            row[f"prong{idx}_px"] = p[0]
            row[f"prong{idx}_py"] = p[1]
            row[f"prong{idx}_pz"] = p[2]
            row[f"prong{idx}_impact_parameter"] = ip
            row[f"prong{idx}_impact_parameter_error"] = ip_err
        rows.append(row)
    return rows


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_track_item(item: Any, idx: int, context: str) -> TrackState:
    """Parse one track dictionary into a `TrackState`."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    state = item.get("state", item)
    if not isinstance(state, dict):
        raise ValueError(f"Track state at index {idx} in {context} must be an object.")
    return TrackState(
        track_id=int(item.get("track_id", idx)),
        collision_id=int(item["collision_id"]),
        x=float(state["x"]),
        y=float(state["y"]),
        z=float(state["z"]),
        px=float(state["px"]),
        py=float(state["py"]),
        pz=float(state["pz"]),
        charge=int(item["charge"]),
        cov21=_parse_packed_cov(item["cov"], 6, "Track cov"),
        mc_particle_id=int(item.get("mc_particle_id", -1)),
    )


def _parse_primary_vertex_item(item: Any, idx: int, context: str) -> PrimaryVertex:
    """Parse one collision dictionary into a `PrimaryVertex`."""
    if not isinstance(item, dict):
        raise ValueError(f"Collision at index {idx} in {context} must be an object.")
    c = _parse_packed_cov(item["cov"], 3, "Primary vertex cov")
    return PrimaryVertex(
        collision_id=int(item.get("collision_id", idx)),
        x=float(item["x"]),
        y=float(item["y"]),
        z=float(item["z"]),
        cov6=(c[0], c[1], c[2], c[3], c[4], c[5]),
    )


def _parse_packed_cov(value: Any, n: int, what: str) -> tuple[float, ...]:
    """Accept a packed lower triangle or a full nested `n x n` list."""
    packed_len = n * (n + 1) // 2
    if not isinstance(value, list):
        raise ValueError(f"{what} must be a list.")
    if len(value) == packed_len and all(isinstance(x, (int, float)) for x in value):
        return tuple(float(x) for x in value)
    if len(value) != n or any(not isinstance(row, list) or len(row) != n for row in value):
        raise ValueError(f"{what} must be a packed list of {packed_len} values or a {n}x{n} list.")
    return tuple(float(value[i][j]) for i in range(n) for j in range(i + 1))


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
