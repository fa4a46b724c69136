#!/usr/bin/env python3
"""
m3d_scan.py
===========

Batch decoder for Vangers M3D vehicle models. Decodes every ``.m3d`` file
under a resource root, reports the assets that fail to decode and optionally
writes a JSON report with per-model statistics.

Usage:
    python3 m3d_scan.py \\
        --m3d-root vangers/resource/m3d \\
        --report reports/m3d_report.json \\
        --workers 4 --verbose
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field, fields as dataclass_fields
from pathlib import Path
from typing import Dict, List, Optional

from m3d_decoder import M3dParseError, Model, decode_model


@dataclass
class ScanStats:
    total_found: int = 0
    decoded: int = 0
    skipped_corrupt: int = 0
    failed: int = 0
    total_vertices: int = 0
    models: List[Dict] = field(default_factory=list)
    failures: List[Dict] = field(default_factory=list)


def merge_stats(target: ScanStats, source: ScanStats) -> None:
    """Merge *source* into *target* by summing int fields and extending list fields."""
    for f in dataclass_fields(ScanStats):
        src_val = getattr(source, f.name)
        if isinstance(src_val, int):
            setattr(target, f.name, getattr(target, f.name) + src_val)
        elif isinstance(src_val, list):
            getattr(target, f.name).extend(src_val)


def summarize_model(source: Path, model: Model) -> Dict:
    wheels = [len(w.mesh) if w.mesh is not None else None for w in model.wheels]
    debris = [len(d.mesh) for d in model.debris]
    return {
        "source": str(source),
        "color": list(model.color),
        "body_vertices": len(model.body),
        "wheel_vertices": wheels,
        "steering_wheels": sum(1 for w in model.wheels if w.steering != 0),
        "debris_vertices": debris,
    }


def scan_single_m3d(source: Path, stats: ScanStats) -> Optional[Model]:
    """Decode a single M3D file, recording the outcome in *stats*."""
    stats.total_found += 1

    try:
        with open(source, 'rb') as f:
            model = decode_model(f)
    except M3dParseError as exc:
        stats.skipped_corrupt += 1
        stats.failures.append({"source": str(source), "error": str(exc), "type": "parse"})
        logging.warning("Parse error for %s: %s", source, exc)
        return None
    except OSError as exc:
        stats.failed += 1
        stats.failures.append({"source": str(source), "error": str(exc), "type": "io"})
        logging.error("Cannot read %s: %s", source, exc)
        return None
    except Exception as exc:
        stats.failed += 1
        stats.failures.append({"source": str(source), "error": str(exc), "type": "unexpected"})
        logging.error("Unexpected error decoding %s: %s", source, exc)
        return None

    summary = summarize_model(source, model)
    stats.decoded += 1
    stats.total_vertices += (
        summary["body_vertices"]
        + sum(n for n in summary["wheel_vertices"] if n is not None)
        + sum(summary["debris_vertices"])
    )
    stats.models.append(summary)
    logging.debug(
        "Decoded %s: body=%d wheels=%d debris=%d",
        source, len(model.body), len(model.wheels), len(model.debris),
    )
    return model


def _m3d_scan_worker(source: Path) -> ScanStats:
    """Worker function for parallel decoding. Returns local stats."""
    stats = ScanStats()
    scan_single_m3d(source, stats)
    return stats


def discover_m3d_files(root: Path) -> List[Path]:
    """Discover all .m3d files under root, case-insensitive."""
    result = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for fname in filenames:
            if fname.lower().endswith('.m3d'):
                result.append(Path(dirpath) / fname)
    result.sort()
    return result


def write_report(stats: ScanStats, report_path: Path) -> None:
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report = {
        "total_found": stats.total_found,
        "decoded": stats.decoded,
        "skipped_corrupt": stats.skipped_corrupt,
        "failed": stats.failed,
        "total_vertices": stats.total_vertices,
        "models": sorted(stats.models, key=lambda entry: entry["source"]),
        "failures": stats.failures,
    }
    report_path.write_text(json.dumps(report, indent=2))
    logging.info("Report written to %s", report_path)


def scan_all(
    m3d_root: Path,
    dry_run: bool,
    report_path: Optional[Path],
    workers: int = 1,
) -> ScanStats:
    """Decode all M3D files found under m3d_root."""
    stats = ScanStats()

    m3d_files = discover_m3d_files(m3d_root)
    total = len(m3d_files)
    logging.info("Found %d M3D files under %s (workers=%d)", total, m3d_root, workers)

    if dry_run:
        for f in m3d_files:
            logging.info("[DRY-RUN] Would decode %s", f)
        stats.total_found = total
        return stats

    start_time = time.time()

    if workers <= 1:
        for source in m3d_files:
            scan_single_m3d(source, stats)
    else:
        chunksize = max(1, total // (workers * 4))
        with ProcessPoolExecutor(max_workers=workers) as executor:
            for worker_stats in executor.map(_m3d_scan_worker, m3d_files, chunksize=chunksize):
                merge_stats(stats, worker_stats)

    elapsed = time.time() - start_time
    logging.info(
        "Scan complete in %.1fs: %d decoded, %d corrupt, %d failed, %d GPU vertices",
        elapsed, stats.decoded, stats.skipped_corrupt, stats.failed, stats.total_vertices,
    )

    if report_path:
        write_report(stats, report_path)

    return stats


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decode Vangers M3D vehicle models and report structural errors."
    )
    parser.add_argument(
        "--m3d-root", type=Path, required=True,
        help="Root directory containing M3D files",
    )
    parser.add_argument(
        "--report", type=Path, default=None,
        help="Path for JSON scan report",
    )
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--workers", type=int, default=os.cpu_count() or 4,
        help="Number of parallel worker processes (default: number of CPUs).",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.m3d_root.is_dir():
        logging.error("M3D root directory not found: %s", args.m3d_root)
        return 1

    stats = scan_all(
        m3d_root=args.m3d_root,
        dry_run=args.dry_run,
        report_path=args.report,
        workers=max(1, args.workers),
    )

    if stats.skipped_corrupt or stats.failed:
        logging.warning("%d files failed to decode", stats.skipped_corrupt + stats.failed)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
