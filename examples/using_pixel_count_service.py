# =============================
# FILE: examples/using_pixel_count_service.py
# =============================
"""
Uso mínimo: PixelCountService cableado desde Settings + DealConfig.
Equivale a `terrabio --backend earthengine pixel-counts --deal deals/horta_2023.yaml --wait`.
"""
from pathlib import Path

from terrabio.composition.di import build_backends, build_pixel_count_service, load_deal_from_yaml
from terrabio.config import get_settings


if __name__ == "__main__":
    settings = get_settings()
    deal = load_deal_from_yaml(Path(__file__).parent / "deals" / "horta_2023.yaml")
    svc = build_pixel_count_service(settings, build_backends(settings, "earthengine", deal=deal))

    report = svc.run(deal)
    print("Exportaciones:")
    for d in report.descriptions():
        print(" -", d)

    for job in report.wait_all(timeout_s=3600):
        print(job.state.value, job.description)
