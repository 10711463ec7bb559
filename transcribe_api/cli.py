"""
Usage report console script

    transcribe-usage-report [--database-url sqlite+aiosqlite:///./local-usage.db]
"""

import argparse
import asyncio
from typing import Optional

from transcribe_api.config import settings
from transcribe_api.database import create_engine, create_session_factory, init_db
from transcribe_api.schemas.usage import UsageReport
from transcribe_api.services.usage_service import UsageService, format_bytes, format_duration

RULE = "=" * 60
MAX_DUPLICATES_SHOWN = 10


def render_report(report: UsageReport) -> str:
    lines = [RULE, "USAGE ANALYSIS", RULE, f"\nTotal Records: {report.total_records}"]
    if report.total_records == 0:
        lines.append("\nNo records found in the database.")
        return "\n".join(lines)

    size = report.file_size
    lines += [
        "\n--- FILE SIZE STATISTICS ---",
        f"Max:     {format_bytes(size.max_size or 0)}",
        f"Min:     {format_bytes(size.min_size or 0)}",
        f"Average: {format_bytes(size.avg_size or 0)}",
        f"Total:   {format_bytes(size.total_size or 0)}",
    ]

    duration = report.duration
    lines += [
        "\n--- DURATION STATISTICS (excluding 0s) ---",
        f"Valid Records: {duration.valid_count}",
        f"Max:     {format_duration(duration.max_duration or 0)}",
        f"Min:     {format_duration(duration.min_duration or 0)}",
        f"Average: {format_duration(duration.avg_duration or 0)}",
        f"Total:   {format_duration(duration.total_duration or 0)}",
    ]

    lines.append("\n--- DUPLICATE DETECTION ---")
    if not report.duplicates:
        lines.append("No duplicates found (same file size + duration)")
    else:
        lines.append(f"Found {len(report.duplicates)} duplicate combinations:")
        for group in report.duplicates[:MAX_DUPLICATES_SHOWN]:
            lines.append(
                f"  {format_bytes(group.file_size_bytes)} + {format_duration(group.duration_ms)}"
                f" -> {group.count} occurrences"
            )
        if len(report.duplicates) > MAX_DUPLICATES_SHOWN:
            lines.append(f"  ... and {len(report.duplicates) - MAX_DUPLICATES_SHOWN} more")
        total_duplicates = sum(group.count for group in report.duplicates)
        lines.append(f"Total records with duplicates: {total_duplicates}")

    if report.models:
        lines.append("\n--- MODEL USAGE BREAKDOWN ---")
        for model in report.models:
            lines += [
                f"\n{model.model_used}:",
                f"  Requests:    {model.count}",
                f"  Avg Size:    {format_bytes(model.avg_size or 0)}",
            ]
            if model.avg_duration:
                lines.append(f"  Avg Duration: {format_duration(model.avg_duration)}")

    ratings = report.ratings
    lines += [
        "\n--- RATINGS ---",
        f"Thumbs up:   {ratings.thumbs_up}",
        f"Thumbs down: {ratings.thumbs_down}",
        f"Unrated:     {ratings.unrated}",
    ]

    lines.append("\n" + RULE)
    return "\n".join(lines)


async def build_report(database_url: str) -> UsageReport:
    engine = create_engine(database_url)
    try:
        await init_db(engine)
        return await UsageService(create_session_factory(engine)).usage_report()
    finally:
        await engine.dispose()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Print a usage report for the transcription service")
    parser.add_argument("--database-url", type=str, default=settings.database_url, help="SQLAlchemy async URL")
    args = parser.parse_args(argv)

    report = asyncio.run(build_report(args.database_url))
    print(render_report(report))


if __name__ == "__main__":
    main()
