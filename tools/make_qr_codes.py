from __future__ import annotations

import sys
from pathlib import Path

import qrcode

from tableside.config import settings
from tableside.ordering.session import table_url

# Change PUBLIC_BASE_URL in .env to the address the diners' phones will open
BASE_URL = settings.public_base_url

OUT_DIR = Path(__file__).resolve().parents[1] / "qrcodes"


def make_table_codes(out_dir: Path, base_url: str, count: int) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    made: list[Path] = []
    for n in range(1, count + 1):
        url = table_url(base_url, n)
        img = qrcode.make(url)

        out_path = out_dir / f"{settings.restaurant_id}__table_{n:02d}.png"
        img.save(out_path)

        print(f"OK  table {n:>2}  ->  {out_path}  ({url})")
        made.append(out_path)
    return made


def main() -> None:
    count = int(sys.argv[1]) if len(sys.argv) > 1 else settings.table_picker_count
    if not 1 <= count <= settings.max_table_number:
        raise SystemExit(f"Table count must be between 1 and {settings.max_table_number}")

    made = make_table_codes(OUT_DIR, BASE_URL, count)
    print(f"\nDone. Generated {len(made)} QR codes in: {OUT_DIR}")


if __name__ == "__main__":
    main()
