# src/terrabio/cli.py
from __future__ import annotations

"""
CLI TerraBio: conteo de píxeles sobre mapas de cambio LandTrendr y limpieza de capas.

Comandos principales:
  - pixel-counts: estratos, año de disturbio y disturbio binario de un deal (YAML).
  - strata-sample: puntos de validación (CEO) estratificados a CSV.
  - fix-rings: convierte el anillo del primer feature en polígono.
  - boundaries: fincas no designadas y rectángulo envolvente (AOI completo).
  - palette: parámetros de visualización (min/max/palette) de una paleta.
  - quicklook: PNG de la banda de estratos con la paleta oficial (solo local).

Ejemplos rápidos:
  python -m terrabio.cli pixel-counts --deal ./deals/horta_2023.yaml
  python -m terrabio.cli --backend earthengine pixel-counts --deal ./deals/horta_2023.yaml --wait

  python -m terrabio.cli boundaries --farms farms.geojson \
      -s intervention.geojson -s regeneration.geojson -s reference.geojson \
      --undesignated-out out/undesignated.geojson --enclosure-out out/full_aoi.geojson
"""

import argparse
import csv
import json
import logging
import sys
from pathlib import Path

from .composition.di import (
    BACKEND_KINDS,
    build_backends,
    build_geometry_service,
    build_pixel_count_service,
    build_sampling_service,
    load_deal_from_yaml,
    load_settings_from_yaml,
)
from .config import Settings, get_settings
from .contracts.palette import PALETTES, lookup_table, named_vis_params
from .contracts.products import STRATA_BAND
from .contracts.sampling import MIN_POINTS_PER_STRATUM
from .contracts.stats import ExportState

logger = logging.getLogger(__name__)


# ----------------------
# Utilidades locales
# ----------------------

def _settings(args: argparse.Namespace) -> Settings:
    s = load_settings_from_yaml(Path(args.settings)) if args.settings else get_settings()
    if args.root:
        root = Path(args.root).expanduser().resolve()
        s = s.model_copy(update={"project_root": root, "export_dir": root / "work/exports"})
    return s


# ----------------------
# Comandos
# ----------------------

def cmd_pixel_counts(args: argparse.Namespace) -> int:
    s = _settings(args)
    deal = load_deal_from_yaml(Path(args.deal))
    if args.loss_then_gain:
        deal = deal.model_copy(update={"loss_then_gain": True})
    backends = build_backends(s, args.backend, deal=deal)
    svc = build_pixel_count_service(s, backends)
    report = svc.run(deal)
    jobs = report.wait_all(timeout_s=args.timeout) if args.wait else report.jobs()
    for job in jobs:
        print(f"{job.state.value}\t{job.destination}")
    failed = [j for j in jobs if j.state in (ExportState.FAILED, ExportState.CANCELLED, ExportState.TIMEOUT)]
    return 1 if failed else 0


def cmd_strata_sample(args: argparse.Namespace) -> int:
    s = _settings(args)
    deal = load_deal_from_yaml(Path(args.deal))
    backends = build_backends(s, args.backend, deal=deal)
    svc = build_sampling_service(s, backends, min_points=args.min_points, seed=args.seed)
    loss = backends.source.load(deal.loss)
    gain = backends.source.load(deal.gain)
    loss_pts, gain_pts = svc.sample_strata(
        loss, gain, deal.farms,
        loss_dictionary=deal.dictionary_loss,
        gain_dictionary=deal.dictionary_gain,
    )
    rows = [dict(r, strata_map=loss.name) for r in loss_pts.records()]
    rows += [dict(r, strata_map=gain.name) for r in gain_pts.records()]
    cols = ["strata_map", *loss_pts.merge(gain_pts).columns()]
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=cols, restval="")
        writer.writeheader()
        writer.writerows(rows)
    print(f"{len(rows)}\t{out}")
    return 0


def cmd_fix_rings(args: argparse.Namespace) -> int:
    s = _settings(args)
    geo = build_geometry_service(build_backends(s, args.backend))
    job = geo.save(geo.fix_rings(geo.load(args.input)), args.out)
    print(job.destination)
    return 0


def cmd_boundaries(args: argparse.Namespace) -> int:
    s = _settings(args)
    geo = build_geometry_service(build_backends(s, args.backend))
    farms = geo.load(args.farms)
    others = [geo.load(p) for p in args.subtract]
    if not args.undesignated_out and not args.enclosure_out:
        raise ValueError("indica --undesignated-out y/o --enclosure-out")
    if args.undesignated_out:
        job = geo.save(geo.undesignated(farms, *others), args.undesignated_out)
        print(job.destination)
    if args.enclosure_out:
        job = geo.save(geo.enclosure(farms, *others), args.enclosure_out)
        print(job.destination)
    return 0


def cmd_palette(args: argparse.Namespace) -> int:
    names = [args.name] if args.name else sorted(PALETTES)
    out = {n: named_vis_params(n) for n in names}
    print(json.dumps(out if len(out) > 1 else out[names[0]], indent=2))
    return 0


def cmd_quicklook(args: argparse.Namespace) -> int:
    s = _settings(args)
    backends = build_backends(s, "local")
    if backends.quicklook is None:
        raise RuntimeError("QuicklookExporterPort no configurado")
    cm = backends.source.load(args.map)
    band = args.band or STRATA_BAND
    cm.require([band])
    pal, vmin = PALETTES[args.palette]
    out = backends.quicklook.export_classmap(cm.handle[band], lookup_table(pal, vmin), args.out)
    print(out)
    return 0


# ----------------------
# Parser
# ----------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="terrabio", description="Conteo de píxeles TerraBio (mapas de cambio LandTrendr)")
    p.add_argument("--root", help="project_root (sobre-escribe Settings.project_root; exports en <root>/work/exports)")
    p.add_argument("--settings", help="YAML de Settings (si no, entorno TERRABIO_* / .env)")
    p.add_argument("--backend", choices=BACKEND_KINDS, default="local", help="backend de ejecución")
    p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING...")
    sub = p.add_subparsers(dest="cmd", required=True)

    # pixel-counts
    pp = sub.add_parser("pixel-counts", help="cuenta píxeles por categoría y exporta las tablas")
    pp.add_argument("--deal", required=True, help="YAML del deal (DealConfig)")
    pp.add_argument("--loss-then-gain", action="store_true", help="agrega los substratos pérdida*10+ganancia")
    pp.add_argument("--wait", action="store_true", help="espera a que terminen las exportaciones")
    pp.add_argument("--timeout", type=float, default=3600.0, help="segundos máximos de espera con --wait")
    pp.set_defaults(func=cmd_pixel_counts)

    # strata-sample
    ps = sub.add_parser("strata-sample", help="puntos de validación estratificados (pérdida y ganancia) a CSV")
    ps.add_argument("--deal", required=True, help="YAML del deal (DealConfig)")
    ps.add_argument("--out", required=True, help="CSV de salida")
    ps.add_argument("--min-points", type=int, default=MIN_POINTS_PER_STRATUM, help="mínimo por estrato (se suma un 5%%)")
    ps.add_argument("--seed", type=int, default=10)
    ps.set_defaults(func=cmd_strata_sample)

    # fix-rings
    pf = sub.add_parser("fix-rings", help="anillo del primer feature -> polígono")
    pf.add_argument("input", help="capa de entrada (GeoJSON o asset id)")
    pf.add_argument("--out", required=True, help="destino (GeoJSON o asset id)")
    pf.set_defaults(func=cmd_fix_rings)

    # boundaries
    pb = sub.add_parser("boundaries", help="fincas no designadas y AOI envolvente")
    pb.add_argument("--farms", required=True, help="capa de fincas")
    pb.add_argument("-s", "--subtract", action="append", default=[], help="capa a restar (repetible)")
    pb.add_argument("--undesignated-out", help="destino de las fincas no designadas")
    pb.add_argument("--enclosure-out", help="destino del rectángulo envolvente")
    pb.set_defaults(func=cmd_boundaries)

    # palette
    pv = sub.add_parser("palette", help="imprime vis params de Earth Engine")
    pv.add_argument("name", nargs="?", choices=sorted(PALETTES), help="paleta (todas si se omite)")
    pv.set_defaults(func=cmd_palette)

    # quicklook
    pq = sub.add_parser("quicklook", help="PNG de una banda categórica (GeoTIFF local)")
    pq.add_argument("--map", required=True, help="GeoTIFF del mapa de cambio")
    pq.add_argument("--band", help=f"banda (por defecto {STRATA_BAND})")
    pq.add_argument("--palette", choices=sorted(PALETTES), default="loss")
    pq.add_argument("--out", required=True, help="ruta PNG")
    pq.set_defaults(func=cmd_quicklook)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except Exception as ex:
        logger.debug("detalle del error", exc_info=True)
        print(f"[ERROR] {ex}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
