# shelfcrawl/export.py
import os
import json
import logging
from datetime import datetime, timezone
import pandas as pd

logger = logging.getLogger("shelfcrawl.export")


def export_books(items, out_dir):
    """
    Write crawled items to dated JSON and CSV files.

    Args:
        items (list[dict]): Items as pushed to the sink
        out_dir (str): Target directory, created if missing

    Returns:
        tuple[str, str]: Paths of the JSON and CSV files

    Output Files:
        - {out_dir}/books_{YYYY-MM-DD}.json
        - {out_dir}/books_{YYYY-MM-DD}.csv

    Note:
        List fields (genres) are joined with "; " in the CSV so each book
        stays on one row. The JSON keeps them as arrays.
    """
    os.makedirs(out_dir, exist_ok=True)
    filename_base = f"books_{datetime.now(timezone.utc).date().isoformat()}"
    json_path = os.path.join(out_dir, f"{filename_base}.json")
    csv_path = os.path.join(out_dir, f"{filename_base}.csv")

    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(list(items), f, indent=2, ensure_ascii=False)

    flat = [
        {k: "; ".join(v) if isinstance(v, list) else v for k, v in item.items()}
        for item in items
    ]
    pd.DataFrame(flat).to_csv(csv_path, index=False)

    logger.info(f"Exported {len(flat)} books to {json_path}, {csv_path}")
    return json_path, csv_path
