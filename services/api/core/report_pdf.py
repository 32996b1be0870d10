# services/api/core/report_pdf.py

from __future__ import annotations
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
from PIL import Image, UnidentifiedImageError
from fpdf import FPDF

from models import ObservationRow

logger = logging.getLogger(__name__)

# Maps a photo URL to a file on this host (None = fetch over HTTP)
LocalResolver = Callable[[str], Optional[Path]]


# ---------- Public API -------------------------------------------------------

async def generate_report_pdf(
    *,
    rows: List[ObservationRow],
    project_name: str = "Observation Data",
    image_timeout: float = 15.0,
    resolve_local: Optional[LocalResolver] = None,
    generated_on: Optional[datetime] = None,
) -> bytes:
    """
    Build the observation report (fpdf2) and return PDF bytes.

    Layout: title block, summary (total / completed / pending), one section
    per entry with its before/after photos, footer with the entry count.

    Args:
        rows: rows to include, in display order (caller filters to meaningful rows)
        project_name: printed under the title
        image_timeout: per-image HTTP timeout (seconds)
        resolve_local: optional hook turning a photo URL into a local file path
        generated_on: override the generation date (tests)

    A photo that cannot be fetched or decoded is left out; the rest of the
    report is still produced.
    """
    images: Dict[str, Optional[Image.Image]] = {}
    async with httpx.AsyncClient(timeout=image_timeout, follow_redirects=True) as client:
        for r in rows:
            for url in (r.before_photo_url, r.after_photo_url):
                if url and url not in images:
                    images[url] = await _load_image(client, url, resolve_local)

    report = _ReportBuilder(title="Observation Data Report")
    report.add_title_block(project_name, generated_on or datetime.now())
    report.add_summary(rows)

    for r in rows:
        report.add_entry(
            r,
            before=images.get(r.before_photo_url) if r.before_photo_url else None,
            after=images.get(r.after_photo_url) if r.after_photo_url else None,
        )

    report.add_footer(f"Total {len(rows)} entries processed")
    return report.build()


# ---------- Internals --------------------------------------------------------

async def _fetch_image_bytes(client: httpx.AsyncClient, url: str) -> bytes:
    r = await client.get(url)
    r.raise_for_status()
    return r.content


async def _load_image(
    client: httpx.AsyncClient,
    url: str,
    resolve_local: Optional[LocalResolver],
) -> Optional[Image.Image]:
    try:
        local = resolve_local(url) if resolve_local else None
        if local is not None:
            data = local.read_bytes()
        else:
            data = await _fetch_image_bytes(client, url)
        img = Image.open(io.BytesIO(data))
        img.load()
        return img.convert("RGB")
    except (httpx.HTTPError, OSError, UnidentifiedImageError) as e:
        logger.warning(f"Skipping image {url}: {e}")
        return None


def _latin1(text: str) -> str:
    # core fonts only cover latin-1
    return (text or "").encode("latin-1", "replace").decode("latin-1")


class _ReportBuilder:
    """
    Vertical-flow report:
      - A4 portrait, 20mm margins
      - entries flow onto the next page when the estimated block won't fit
    """

    IMAGE_W = 60.0
    IMAGE_H = 45.0
    IMAGE_GAP = 10.0

    def __init__(self, *, title: str):
        self._pdf = FPDF(orientation="P", unit="mm", format="A4")
        self._pdf.set_margins(20, 20, 20)
        self._pdf.set_auto_page_break(auto=True, margin=20)
        self._pdf.add_page()
        self._pdf.set_title(title)
        self.title = title

        self.content_w = self._pdf.w - self._pdf.l_margin - self._pdf.r_margin

    def _ensure_space(self, block_h_mm: float):
        """Add page if the next block won't fit."""
        if self._pdf.get_y() + block_h_mm > (self._pdf.h - self._pdf.b_margin):
            self._pdf.add_page()

    def _line(self, h: float, text: str, *, size: int, style: str = "", align: str = "L"):
        self._pdf.set_font("Helvetica", style, size)
        self._pdf.cell(0, h, _latin1(text), new_x="LMARGIN", new_y="NEXT", align=align)

    def add_title_block(self, project_name: str, generated_on: datetime):
        self._line(12, self.title, size=24, style="B", align="C")
        self._line(9, project_name, size=16, align="C")
        self._line(8, f"Generated on: {generated_on.strftime('%Y-%m-%d')}", size=12, align="C")
        self._pdf.ln(10)

    def add_summary(self, rows: List[ObservationRow]):
        completed = sum(1 for r in rows if r.status == "completed")
        self._line(9, "Summary", size=14, style="B")
        self._line(6, f"Total Entries: {len(rows)}", size=11)
        self._line(6, f"Completed: {completed}", size=11)
        self._line(6, f"Pending: {len(rows) - completed}", size=11)
        self._pdf.ln(10)

    def _labeled(self, label: str, value: str):
        self._pdf.set_font("Helvetica", "B", 10)
        self._pdf.cell(0, 6, _latin1(label), new_x="LMARGIN", new_y="NEXT")
        self._pdf.set_font("Helvetica", "", 10)
        self._pdf.multi_cell(0, 5, _latin1(value or "-"), new_x="LMARGIN", new_y="NEXT")
        self._pdf.ln(2)

    def add_entry(
        self,
        row: ObservationRow,
        *,
        before: Optional[Image.Image],
        after: Optional[Image.Image],
    ):
        pdf = self._pdf
        self._ensure_space(80)

        self._line(9, f"Entry #{row.srno} - {row.part_name}", size=14, style="B")

        half = self.content_w / 2
        pdf.set_font("Helvetica", "B", 10)
        pdf.cell(35, 6, "Operation Number:")
        pdf.set_font("Helvetica", "", 10)
        pdf.cell(half - 35, 6, _latin1(row.op_number))
        pdf.set_font("Helvetica", "B", 10)
        pdf.cell(30, 6, "Responsibility:")
        pdf.set_font("Helvetica", "", 10)
        pdf.cell(0, 6, _latin1(row.responsibility), new_x="LMARGIN", new_y="NEXT")

        pdf.set_font("Helvetica", "B", 10)
        pdf.cell(15, 6, "Status:")
        pdf.set_font("Helvetica", "", 10)
        pdf.cell(0, 6, row.status.upper(), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

        self._labeled("Observation:", row.observation)
        self._labeled("Action Plan:", row.action_plan)
        if row.remarks:
            self._labeled("Remarks:", row.remarks)

        # a photo that failed to load is skipped, its label too
        photos = [(label, img) for label, img in (("Before:", before), ("After:", after)) if img is not None]
        if photos:
            self._ensure_space(self.IMAGE_H + 20)
            self._line(7, "Images:", size=10, style="B")
            top = pdf.get_y()
            x = pdf.l_margin
            for label, img in photos:
                pdf.set_xy(x, top)
                pdf.set_font("Helvetica", "", 10)
                pdf.cell(self.IMAGE_W, 5, label)
                self._add_image(img, x, top + 5)
                x += self.IMAGE_W + self.IMAGE_GAP
            pdf.set_xy(pdf.l_margin, top + 5 + self.IMAGE_H + 5)

        # separator
        pdf.set_draw_color(200, 200, 200)
        y = pdf.get_y()
        pdf.line(pdf.l_margin, y, pdf.w - pdf.r_margin, y)
        pdf.ln(10)

    def _add_image(self, image: Image.Image, x: float, y: float):
        img_w_px, img_h_px = image.size
        if img_w_px == 0 or img_h_px == 0:
            return  # skip invalid

        # fit inside the IMAGE_W x IMAGE_H box, keep aspect ratio
        scale = min(self.IMAGE_W / img_w_px, self.IMAGE_H / img_h_px)
        w_mm, h_mm = img_w_px * scale, img_h_px * scale

        bio = io.BytesIO()
        image.save(bio, format="JPEG", quality=80)
        bio.seek(0)
        self._pdf.image(bio, x=x, y=y, w=w_mm, h=h_mm)

    def add_footer(self, text: str):
        pdf = self._pdf
        pdf.set_auto_page_break(auto=False)
        pdf.set_xy(pdf.l_margin, pdf.h - 12)
        pdf.set_font("Helvetica", "", 8)
        pdf.cell(0, 5, _latin1(text), align="C")

    def build(self) -> bytes:
        return bytes(self._pdf.output())
