"""Tests for run output writers."""
import json

import pytest

from src.artifacts.writers import write_files, write_session_log, write_validation_report
from src.gates.validation import ValidationPipeline, ValidationReport


class TestWriteFiles:
    def test_writes_nested_paths(self, tmp_path):
        written = write_files(tmp_path, {"src/App.tsx": "export default 1", "package.json": "{}\n"})
        assert sorted(path.relative_to(tmp_path).as_posix() for path in written) == ["package.json", "src/App.tsx"]
        assert (tmp_path / "src" / "App.tsx").read_text(encoding="utf-8") == "export default 1\n"
        assert (tmp_path / "package.json").read_text(encoding="utf-8") == "{}\n"

    @pytest.mark.parametrize("path", ["/etc/passwd", "../outside.ts", "src/../../outside.ts", "C:/temp/x.ts"])
    def test_rejects_escaping_paths(self, tmp_path, path):
        with pytest.raises(ValueError):
            write_files(tmp_path / "out", {"ok.ts": "export {}", path: "x"})
        assert not (tmp_path / "out").exists()


class TestReports:
    def test_validation_report_markdown(self, tmp_path):
        report = ValidationReport()
        report.error("Missing required file: package.json", file="package.json")
        report.warn("Unbalanced brackets in src/App.tsx near line 4", file="src/App.tsx", line=4)
        target = tmp_path / "quality_report.md"

        write_validation_report(target, report, title="Acme Quality Report")

        text = target.read_text(encoding="utf-8")
        assert text.startswith("# Acme Quality Report\n")
        assert "- Status: **FAILED**" in text
        assert "## Errors\n- Missing required file: package.json (`package.json`)" in text
        assert "(`src/App.tsx`:4)" in text

    def test_passed_report_has_no_sections(self, tmp_path):
        target = tmp_path / "report.md"
        write_validation_report(target, ValidationReport())
        text = target.read_text(encoding="utf-8")
        assert "**PASSED**" in text
        assert "## Errors" not in text

    def test_session_log(self, tmp_path, session):
        session.record_interaction("analyze", "p", "r", 4)
        target = tmp_path / "session.json"
        write_session_log(target, session)
        payload = json.loads(target.read_text(encoding="utf-8"))
        assert payload["session_id"] == session.session_id
        assert payload["total_tokens"] == 4

    def test_quality_breakdown(self, tmp_path, stack, required_files):
        report = ValidationPipeline(stack).validate(required_files)
        target = tmp_path / "quality_report.md"
        write_validation_report(target, report)
        text = target.read_text(encoding="utf-8")
        assert f"## Quality score: {report.quality.score}/100 (BELOW 90)" in text
        assert f"| structure | {report.quality.categories['structure'].score} |" in text
        assert "- ERROR [structure] Components directory: " in text
        assert "## Recommendations\n- " in text
