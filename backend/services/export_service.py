"""
Export service.
Renders transcription results to text/subtitle/data formats and writes them to disk.
"""

import csv
import io
import json
import logging
import re
from pathlib import Path

import aiofiles

from models.transcription import TranscriptionResult, ExportFormat
from utils.exceptions import ExportError
from utils.formatting import format_clock, format_timestamp

logger = logging.getLogger(__name__)


class ExportService:
    """Service for exporting transcription results."""

    def render(self, result: TranscriptionResult, export_format: ExportFormat) -> bytes:
        """Render `result` in `export_format` as UTF-8 bytes."""
        renderers = {
            ExportFormat.TXT: self.to_txt,
            ExportFormat.SRT: self.to_srt,
            ExportFormat.VTT: self.to_vtt,
            ExportFormat.MD: self.to_markdown,
            ExportFormat.CSV: self.to_csv,
            ExportFormat.JSON: self.to_json,
        }
        try:
            renderer = renderers[ExportFormat(export_format)]
        except (KeyError, ValueError):
            raise ExportError(f"Unsupported export format: {export_format}")
        return renderer(result).encode("utf-8")

    async def save(
        self,
        result: TranscriptionResult,
        export_format: ExportFormat,
        directory: Path,
        base_name: str,
    ) -> Path:
        """
        Write `<base_name>_transcript.<ext>` into `directory`.

        An existing file is never overwritten; a numeric suffix is added instead.
        """
        export_format = ExportFormat(export_format)
        content = self.render(result, export_format)
        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_path = self._unique_path(directory, self._sanitize(base_name), export_format)
            async with aiofiles.open(file_path, "wb") as out_file:
                await out_file.write(content)
        except OSError as e:
            logger.error(f"Failed to write export to {directory}: {e}")
            raise ExportError(f"Failed to save transcript: {e}")

        logger.info(f"Saved export: {file_path} ({len(content)} bytes)")
        return file_path

    # --- Renderers ---

    def to_txt(self, result: TranscriptionResult) -> str:
        if not any(s.speaker for s in result.segments):
            return result.text

        # Group consecutive segments by speaker
        blocks = []
        current = None
        for segment in result.segments:
            if segment.speaker != current or not blocks:
                current = segment.speaker
                header = f"[{current}]:\n" if current else ""
                blocks.append(header + segment.text.strip())
            else:
                blocks[-1] += " " + segment.text.strip()
        return "\n\n".join(blocks)

    def to_srt(self, result: TranscriptionResult) -> str:
        blocks = []
        for index, segment in enumerate(result.segments, 1):
            speaker = f"[{segment.speaker}]: " if segment.speaker else ""
            blocks.append(
                f"{index}\n"
                f"{format_timestamp(segment.start_time)} --> {format_timestamp(segment.end_time)}\n"
                f"{speaker}{segment.text.strip()}"
            )
        return "\n\n".join(blocks)

    def to_vtt(self, result: TranscriptionResult) -> str:
        lines = ["WEBVTT", ""]
        for segment in result.segments:
            start = format_timestamp(segment.start_time, ".")
            end = format_timestamp(segment.end_time, ".")
            lines.append(f"{start} --> {end}")
            if segment.speaker:
                lines.append(f"<v {segment.speaker}>{segment.text.strip()}")
            else:
                lines.append(segment.text.strip())
            lines.append("")
        return "\n".join(lines).strip()

    def to_markdown(self, result: TranscriptionResult) -> str:
        md = "# Transcription\n\n"
        md += f"**Date:** {result.created_at.strftime('%Y-%m-%d %H:%M')}\n"
        md += f"**Duration:** {format_clock(result.duration)}\n"
        if result.language:
            md += f"**Language:** {result.language}\n"
        if result.model_used:
            md += f"**Model:** {result.model_used}\n"
        md += "\n---\n\n## Content\n\n"
        md += result.text + "\n\n"

        if result.segments:
            md += "---\n\n## Segments\n\n"
            for segment in result.segments:
                speaker = f" _{segment.speaker}_:" if segment.speaker else ""
                md += f"- **[{format_clock(segment.start_time)}]**{speaker} {segment.text.strip()}\n"
        return md

    def to_csv(self, result: TranscriptionResult) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Start Time", "End Time", "Speaker", "Text"])
        for segment in result.segments:
            writer.writerow([
                format_clock(segment.start_time),
                format_clock(segment.end_time),
                segment.speaker or "Unknown",
                segment.text.strip(),
            ])
        return buffer.getvalue()

    def to_json(self, result: TranscriptionResult) -> str:
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False, sort_keys=True)

    # --- Helpers ---

    def _sanitize(self, name: str) -> str:
        """Strip characters that are unsafe in file names."""
        cleaned = re.sub(r'[\\/:*?"<>|]+', "_", name).strip(" .")
        return cleaned or "transcript"

    def _unique_path(self, directory: Path, base_name: str, export_format: ExportFormat) -> Path:
        ext = export_format.file_extension
        candidate = directory / f"{base_name}_transcript.{ext}"
        counter = 2
        while candidate.exists():
            candidate = directory / f"{base_name}_transcript_{counter}.{ext}"
            counter += 1
        return candidate
