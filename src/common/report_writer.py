"""
Report rendering: structured records, JSON, CSV and HTML.
Reports hand over flat rows; nested detail stays in the JSON form.
"""

import json
import logging
import os
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from src.common.errors import ReportOutputError

logger = logging.getLogger(__name__)

FORMATS = ("json", "csv", "html")

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: Segoe UI, Arial, sans-serif; margin: 24px; }}
table {{ border-collapse: collapse; }}
th, td {{ border: 1px solid #ccc; padding: 4px 8px; text-align: right; }}
th {{ background: #005f4b; color: #fff; }}
</style>
</head>
<body>
<h1>{title}</h1>
<p>Generated {generated}</p>
{table}
</body>
</html>
"""


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def render_json(records: List[Dict[str, Any]]) -> str:
    return json.dumps(records, indent=4, sort_keys=True, default=_json_default)


def render_csv(rows: List[Dict[str, Any]]) -> str:
    return pd.DataFrame(rows).to_csv(index=False)


def render_html(rows: List[Dict[str, Any]], title: str) -> str:
    table = pd.DataFrame(rows).to_html(index=False, na_rep="", border=0)
    return HTML_TEMPLATE.format(title=title, generated=datetime.now().strftime("%Y-%m-%d %H:%M"), table=table)


def write_report(records: List[Dict[str, Any]], rows: List[Dict[str, Any]], fmt: str,
                 title: str, output: Optional[str] = None) -> str:
    """
    Render a report and write it to output (or return it for stdout).

    Args:
        records: structured form, used for JSON
        rows: flat form, used for CSV and HTML
        fmt: one of FORMATS
        title: HTML heading
        output: destination file; empty for no file
    """
    if fmt == "json":
        content = render_json(records)
    elif fmt == "csv":
        content = render_csv(rows)
    elif fmt == "html":
        content = render_html(rows, title)
    else:
        raise ValueError(f"Unknown report format '{fmt}' (expected one of {', '.join(FORMATS)})")

    if output:
        directory = os.path.dirname(os.path.abspath(output))
        try:
            os.makedirs(directory, exist_ok=True)
            with open(output, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
        except OSError as e:
            raise ReportOutputError(output, e.strerror or str(e))
        logger.info(f"✅ Report written to {output} ({fmt}, {len(rows)} rows)")
    return content
