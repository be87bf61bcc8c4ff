from __future__ import annotations

import argparse
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from nf_detect.labels import load_labels


@dataclass(frozen=True)
class SeedArgs:
    model: Path
    labels: Path
    to_dir: Path


def parse_args(argv: list[str] | None = None) -> SeedArgs:
    ap = argparse.ArgumentParser(description="Copy an exported model and labels into assets")
    ap.add_argument("--model", required=True, help="Exported TorchScript model (.ptl or .pt)")
    ap.add_argument("--labels", required=True, help="Label file, one class name per line")
    ap.add_argument("--to-dir", default="./assets/models", help="Destination assets directory")
    a = ap.parse_args(argv)
    return SeedArgs(
        model=Path(str(a.model)),
        labels=Path(str(a.labels)),
        to_dir=Path(str(a.to_dir)),
    )


def copy_assets(args: SeedArgs) -> tuple[Path, Path]:
    if not (args.model.exists() and args.labels.exists()):
        raise SystemExit(
            f"Source files not found: {args.model.as_posix()} and {args.labels.as_posix()}"
        )
    # Refuse label files the runtime would reject at startup
    labels = load_labels(args.labels)
    args.to_dir.mkdir(parents=True, exist_ok=True)
    dst_model = args.to_dir / args.model.name
    dst_labels = args.to_dir / "labels.txt"
    shutil.copy2(args.model, dst_model)
    shutil.copy2(args.labels, dst_labels)
    logging.getLogger("nf_detect").info(
        "seed_assets_copied model=%s labels=%d dst=%s",
        dst_model.name,
        len(labels),
        args.to_dir.as_posix(),
    )
    return dst_model, dst_labels


def main() -> None:  # pragma: no cover - tiny glue
    from nf_detect.logging import init_logging

    init_logging()
    copy_assets(parse_args())


if __name__ == "__main__":
    main()
