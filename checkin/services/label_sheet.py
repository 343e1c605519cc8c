"""
Wedding Check-In — Printable Label Sheet Rendering
====================================================

What:  Renders a self-contained HTML page of QR labels for printing / PDF export.
How:   Jinja2 template shipped inside the package (templates/label_sheet.html),
       autoescaped so guest names cannot inject markup into the sheet.
Who:   Called by CheckInTokenService.generate_label_sheet().

The page has no external assets: styles are inline and every QR image is a
data URL, so it prints the same from a browser tab, a saved file, or a
headless PDF converter.
"""

from dataclasses import dataclass
from typing import List, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from checkin.schemas.check_in import LabelLayout

_env = Environment(
    loader=PackageLoader("checkin", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class Label:
    image: str
    guest_name: Optional[str] = None
    table_number: Optional[str] = None


def render_label_sheet(labels: List[Label], layout: LabelLayout) -> str:
    template = _env.get_template("label_sheet.html")
    return template.render(labels=labels, layout=layout)
