"""Writing report artifacts to an output directory."""

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from apex_test_runner.models.result import OutputDirConfig, Report, ResultFormat
from apex_test_runner.reporters import format_junit, format_tap

log = logging.getLogger(__name__)

RUN_ID_FILENAME = "test-run-id.txt"

FORMATTERS: Mapping[ResultFormat, tuple[str, Callable[[Report], str]]] = {
    ResultFormat.JSON: (".json", lambda report: stringify(report.to_json_dict())),
    ResultFormat.JUNIT: ("-junit.xml", format_junit),
    ResultFormat.TAP: ("-tap.txt", format_tap),
}


def stringify(content: Any) -> str:
    """Serialize content as stable, indented JSON."""
    return json.dumps(content, indent=2, ensure_ascii=False) + "\n"


def result_file_stem(report: Report) -> str:
    """Common prefix of the report's artifact names."""
    if run_id := report.summary.test_run_id:
        return f"test-result-{run_id}"
    return "test-result"


async def write_result_files(
    report: Report,
    config: OutputDirConfig,
    with_coverage: bool = False,
) -> list[Path]:
    """Write the run id and every requested encoding of the report.

    Args:
        report: The report to write
        config: Output directory, encodings and explicit files
        with_coverage: Also write the code coverage rows on their own

    Returns:
        Paths of the written artifacts, run id file first

    """
    dir_path = config.dir_path
    stem = result_file_stem(report)

    artifacts: dict[Path, str] = {
        dir_path / RUN_ID_FILENAME: report.summary.test_run_id,
    }

    for result_format in dict.fromkeys(config.result_formats):
        suffix, formatter = FORMATTERS[result_format]
        artifacts[dir_path / f"{stem}{suffix}"] = formatter(report)

    for file_info in config.file_infos:
        content = file_info.content
        artifacts[dir_path / file_info.filename] = (
            content if isinstance(content, str) else stringify(content)
        )

    if with_coverage:
        coverage = report.to_json_dict().get("codecoverage", [])
        artifacts[dir_path / f"{stem}-codecoverage.json"] = stringify(coverage)

    await asyncio.to_thread(dir_path.mkdir, parents=True, exist_ok=True)
    await asyncio.gather(
        *(asyncio.to_thread(write_file, path, content) for path, content in artifacts.items())
    )

    log.info("Wrote %d result file(s) to %s", len(artifacts), dir_path)
    return list(artifacts)


def write_file(path: Path, content: str) -> None:
    """Write one artifact, closing the file on every exit path."""
    with path.open("w", encoding="utf-8") as f:
        f.write(content)
