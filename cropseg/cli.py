"""
CLI de segmentación sobre una imagen
====================================

Uso:
    python -m cropseg image.jpg --box 100 100 140 120
    python -m cropseg image.jpg --point 120 110 --point 130 112 --negative 90 90
    python -m cropseg image.jpg --box 100 100 140 120 --overlay out.png --label label.png

Carga config/cropseg/config.yaml si existe (o --config), variables de entorno
CROPSEG_* (también desde .env) y corre un prompt sobre la imagen.
"""
from pathlib import Path
import argparse
import logging
import sys

import cv2
import numpy as np
from dotenv import load_dotenv
from pydantic import ValidationError

from .annotation import build_label
from .config import CropSegConfig
from .errors import CropSegError
from .inference.factories import SessionFactory
from .logging import setup_logging_from_config
from .visualization import render_annotations


DEFAULT_CONFIG_PATH = "config/cropseg/config.yaml"

logger = logging.getLogger(__name__)


def load_config(config_path: str) -> CropSegConfig:
    """
    Carga la config desde YAML (o defaults si no existe), fail fast.

    Raises:
        SystemExit: Si la configuración es inválida
    """
    try:
        if Path(config_path).exists():
            config = CropSegConfig.from_yaml(config_path)
            print(f"✅ Config loaded and validated from {config_path}")
        else:
            config = CropSegConfig()
            print(f"⚠️  Config file not found ({config_path}), using defaults")
    except ValidationError as e:
        print("❌ Invalid configuration:")
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            print(f"   • {field}: {error['msg']}")
        print(f"\nPlease fix {config_path} and try again.")
        sys.exit(1)
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Segmentación promptable con re-encoding adaptativo de región"
    )
    parser.add_argument("image", help="Imagen a segmentar")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML de configuración")

    prompt = parser.add_mutually_exclusive_group(required=True)
    prompt.add_argument(
        "--box", nargs=4, type=int, metavar=("X0", "Y0", "X1", "Y1"),
        help="Caja en coordenadas de imagen",
    )
    prompt.add_argument(
        "--point", nargs=2, type=int, action="append", metavar=("X", "Y"),
        help="Punto positivo (repetible)",
    )
    parser.add_argument(
        "--negative", nargs=2, type=int, action="append", default=[], metavar=("X", "Y"),
        help="Punto negativo (repetible, solo con --point)",
    )
    parser.add_argument(
        "--largest", action="store_true",
        help="Solo el polígono más grande (return_all=False)",
    )
    parser.add_argument("--overlay", help="Guardar render con contornos y región encodeada")
    parser.add_argument("--label", help="Guardar imagen de labels (PNG 16 bits)")
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """Parsea argv y rechaza combinaciones que el parser solo no detecta."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.box is not None and args.negative:
        parser.error("--negative only applies to --point prompts, not --box")
    return args


def run(args: argparse.Namespace, config: CropSegConfig) -> int:
    """Corre un prompt y guarda las salidas pedidas. Retorna el exit code."""
    image = cv2.imread(args.image, cv2.IMREAD_COLOR)
    if image is None:
        print(f"❌ Cannot read image: {args.image}")
        return 1

    return_all = not args.largest
    # OpenCV lee BGR, la sesión trabaja en RGB
    rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

    with SessionFactory.create(config) as session:
        session.set_image(rgb)
        if args.box is not None:
            polygons = session.process_box(args.box, return_all=return_all)
        else:
            polygons = session.process_points(
                np.array(args.point), np.array(args.negative).reshape(-1, 2),
                return_all=return_all,
            )
        region = session.current_region
        masks = session.to_masks(polygons)

    h, w = image.shape[:2]
    label = build_label(w, h, masks)
    print(f"✅ {len(polygons)} polygons, encoded region {region}")

    if args.overlay:
        cv2.imwrite(args.overlay, render_annotations(image, masks, region=region, label=label))
        print(f"🖼️  Overlay saved to {args.overlay}")
    if args.label:
        cv2.imwrite(args.label, label.astype(np.uint16))
        print(f"🏷️  Label saved to {args.label}")
    return 0


def main(argv=None):
    """Punto de entrada principal"""
    # Variables CROPSEG_* desde .env
    load_dotenv()

    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging_from_config(config.logging)
    logger.info("🔧 cropseg starting...")

    try:
        code = run(args, config)
    except CropSegError as e:
        logger.error(f"❌ Segmentation failed: {e}", exc_info=True)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
