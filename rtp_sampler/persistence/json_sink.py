"""JSON file sink in the stored result format.

One file per trial::

    {output_dir}/{game_id}/GameResultData_{level}_{rep}.json
    {output_dir}/{game_id}_fb_{mode}/GameResultData_fb{mode}_{level}_{rep}.json

Each file holds ``{"rtpLevel", "srNumber", "data": [...records]}``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from rtp_sampler.errors import SinkError
from rtp_sampler.models import SelectionResult

logger = logging.getLogger(__name__)

FILE_PATTERN = "GameResultData_{prefix}{level}_{rep}.json"


class JsonFileSink:
    """Writes each selection to its own JSON file.

    Files are written to a temporary name and renamed, so a crashed trial
    never leaves a truncated result behind. Distinct trials write distinct
    files, so no lock is needed.

    Args:
        output_dir: Root output directory.
        game_id: Game identifier, used for the subdirectory.
        purchase_mode: Feature-buy mode for purchase runs, else None.
        indent: JSON indentation, None for compact output.
    """

    def __init__(
        self,
        output_dir: str | Path,
        game_id: int,
        purchase_mode: int | None = None,
        indent: int | None = None,
    ) -> None:
        self.game_id = game_id
        self.purchase_mode = purchase_mode
        self.indent = indent
        subdir = str(game_id) if purchase_mode is None else f"{game_id}_fb_{purchase_mode}"
        self.directory = Path(output_dir) / subdir

    def path_for(self, level_id: int, repetition: int) -> Path:
        prefix = "" if self.purchase_mode is None else f"fb{self.purchase_mode}_"
        return self.directory / FILE_PATTERN.format(prefix=prefix, level=level_id, rep=repetition)

    def write(self, result: SelectionResult, level_id: int, repetition: int) -> None:
        document: dict[str, Any] = {
            "rtpLevel": level_id,
            "srNumber": repetition,
            "data": [record.to_dict() for record in result.records],
        }
        path = self.path_for(level_id, repetition)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(document, f, indent=self.indent, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise SinkError(f"failed to write {path}: {e}") from e
        logger.debug("wrote %s (%d records)", path, len(result.records))


def read_result_file(path: str | Path) -> dict[str, Any]:
    """Load a result file written by ``JsonFileSink``.

    Raises:
        ValueError: If the document lacks ``rtpLevel``, ``srNumber`` or ``data``.
    """
    with open(path) as f:
        document = json.load(f)
    missing = [key for key in ("rtpLevel", "srNumber", "data") if key not in document]
    if missing:
        raise ValueError(f"{path} is missing key(s): {', '.join(missing)}")
    return document
