"""Entry point: python -m model_import"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from model_import.app_config import load_config
from model_import.errors import ModelImportError
from model_import.importer import import_model


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="model_import",
        description="Import an FBX/OBJ/glTF/GLB/DAE model into an assets folder.",
    )
    parser.add_argument("source", help="Path to the model file.")
    parser.add_argument("--assets-root", required=True, help="Project assets root directory.")
    parser.add_argument(
        "--target-folder",
        default=None,
        help='Folder under the assets root that receives the model (default: config "models_dir_name").',
    )
    parser.add_argument("--config", default=None, help="Path to an import config JSON file.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    cfg = load_config(Path(args.config) if args.config else None)
    try:
        guid = import_model(Path(args.source), Path(args.assets_root), args.target_folder, config=cfg)
    except ModelImportError as e:
        print(f"[import] failed: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    print(guid)


if __name__ == "__main__":
    main()
