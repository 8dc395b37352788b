"""Excel export of the focus session history."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

import pandas as pd

LOGGER = logging.getLogger(__name__)

SESSION_COLUMNS = ["SessionId", "Date", "Time", "Task", "TaskId", "Color", "DurationMinutes"]


class ExcelExporter:
    def __init__(self, export_path: Path):
        self.export_path = Path(export_path)
        self.export_path.parent.mkdir(parents=True, exist_ok=True)

    def export(self, sessions: Iterable, breakdown: Iterable) -> Path:
        """Write sessions, breakdown and metadata sheets.

        Sessions already present in an earlier export are kept, so clearing
        the in-app history does not erase the spreadsheet; rows are
        deduplicated by session id with the newest values winning.
        """
        rows = []
        for session in sessions:
            local = session.timestamp.astimezone()
            rows.append(
                (
                    session.id,
                    local.date(),
                    local.strftime("%H:%M"),
                    session.task_name,
                    session.task_id or "",
                    session.task_color,
                    round(session.duration / 60.0, 2),
                )
            )
        sessions_df = pd.DataFrame(rows, columns=SESSION_COLUMNS)

        existing = None
        if self.export_path.exists():
            try:
                existing = pd.read_excel(self.export_path, sheet_name="Sessions")
            except Exception:
                LOGGER.warning("Existing Excel file unreadable, recreating: %s", self.export_path)

        if existing is not None and not existing.empty:
            existing["Date"] = pd.to_datetime(existing["Date"]).dt.date
            existing["TaskId"] = existing["TaskId"].fillna("")
            combined = pd.concat([existing, sessions_df], ignore_index=True)
            combined.drop_duplicates(subset=["SessionId"], keep="last", inplace=True)
            sessions_df = combined

        sessions_df = sessions_df.sort_values(["Date", "Time"], ascending=False)
        breakdown_df = pd.DataFrame(
            [(b.name, round(b.seconds / 60.0, 2), b.percent, b.sessions) for b in breakdown],
            columns=["Task", "TotalMinutes", "Percent", "Sessions"],
        )

        with pd.ExcelWriter(self.export_path, engine="openpyxl", mode="w") as writer:
            sessions_df.to_excel(writer, sheet_name="Sessions", index=False)
            breakdown_df.to_excel(writer, sheet_name="Breakdown", index=False)
            meta_df = pd.DataFrame(
                [[datetime.now(), len(sessions_df)]], columns=["ExportedAt", "RowCount"]
            )
            meta_df.to_excel(writer, sheet_name="Meta", index=False)
        LOGGER.info("Exported session history to %s", self.export_path)
        return self.export_path
