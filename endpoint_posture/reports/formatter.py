"""
    Report rendering: a styled HTML table for people, and a JSON document for
    archival. Both are pure functions of a ComplianceReport (plus optional
    follow-up answers) and return text; writing files is core.report's job.
"""
from __future__ import annotations
import html as html_mod
import json
from typing import Any

from endpoint_posture.core.errors import ReportFormatError
from endpoint_posture.core.models import VERDICT_KINDS, ComplianceReport, Verdict

SCHEMA_VERSION = "1.0"

KIND_LABELS = {
    "COMPLIANT": "Compliant",
    "NON_COMPLIANT": "Non-compliant",
    "SKIPPED": "Skipped",
    "ERROR": "Error",
}
KIND_CSS = {
    "COMPLIANT": "compliant",
    "NON_COMPLIANT": "non-compliant",
    "SKIPPED": "skipped",
    "ERROR": "error",
}

_STYLE = """
body { font-family: Segoe UI, Arial, sans-serif; margin: 2em; color: #222; }
h1 { font-size: 1.5em; }
table { border-collapse: collapse; width: 100%; margin-bottom: 2em; }
th, td { border: 1px solid #ccc; padding: 6px 10px; text-align: left; vertical-align: top; }
th { background: #f0f0f0; }
tr.compliant td.kind { background: #d4edda; color: #155724; }
tr.non-compliant td.kind { background: #f8d7da; color: #721c24; }
tr.skipped td.kind { background: #e2e3e5; color: #383d41; }
tr.error td.kind { background: #fff3cd; color: #856404; }
dl.meta dt { font-weight: bold; float: left; clear: left; width: 12em; }
dl.meta dd { margin-left: 13em; }
"""


def _e(value: Any) -> str:
    return html_mod.escape("" if value is None else str(value))


def render_html(
    report: ComplianceReport,
    answers: dict[str, str] | None = None,
    title: str = "Endpoint Security Review",
) -> str:
    meta, host = report.meta, report.host
    lines: list[str] = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{_e(title)}</title>",
        f"<style>{_STYLE}</style>",
        "</head>",
        "<body>",
        f"<h1>{_e(title)}</h1>",
        '<dl class="meta">',
    ]
    for label, value in (
        ("Host", host.get("hostname")),
        ("User", host.get("user")),
        ("Operating system", " ".join(str(v) for v in (host.get("os"), host.get("os_release")) if v)),
        ("Domain joined", host.get("domain_joined")),
        ("Profile", meta.get("profile")),
        ("Run started", meta.get("started")),
    ):
        if value not in (None, ""):
            lines.append(f"<dt>{_e(label)}</dt><dd>{_e(value)}</dd>")
    lines.append("</dl>")

    counts = report.counts()
    summary = ", ".join(f"{KIND_LABELS[k]}: {counts[k]}" for k in VERDICT_KINDS)
    lines.append(f'<p class="summary">{_e(summary)}</p>')

    lines += [
        '<table class="checks">',
        "<thead><tr><th>Check</th><th>Result</th><th>Detail</th><th>Error</th></tr></thead>",
        "<tbody>",
    ]
    for name, verdict in report.entries():
        error_cell = _e(verdict.detail) if verdict.kind == "ERROR" else ""
        detail_cell = "" if verdict.kind == "ERROR" else _e(verdict.detail)
        lines.append(
            f'<tr class="{KIND_CSS[verdict.kind]}">'
            f'<td class="name">{_e(name)}</td>'
            f'<td class="kind">{_e(KIND_LABELS[verdict.kind])}</td>'
            f'<td class="detail">{detail_cell}</td>'
            f'<td class="error">{error_cell}</td>'
            "</tr>"
        )
    lines += ["</tbody>", "</table>"]

    if answers:
        lines += [
            "<h2>Follow-up answers</h2>",
            '<table class="followup">',
            "<thead><tr><th>Question</th><th>Answer</th></tr></thead>",
            "<tbody>",
        ]
        for question, answer in answers.items():
            lines.append(f"<tr><td>{_e(question)}</td><td>{_e(answer)}</td></tr>")
        lines += ["</tbody>", "</table>"]

    lines += ["</body>", "</html>", ""]
    return "\n".join(lines)


def report_to_dict(report: ComplianceReport, answers: dict[str, str] | None = None) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "meta": report.meta,
        "host": report.host,
        "summary": report.counts(),
        # a list keeps registration order explicit for any consumer
        "checks": [
            {
                "name": name,
                "kind": v.kind,
                "detail": v.detail,
                "reason_required": v.reason_required,
                "evidence": v.evidence,
            }
            for name, v in report.entries()
        ],
    }
    if answers is not None:
        doc["followup"] = [{"question": q, "answer": a} for q, a in answers.items()]
    return doc


def render_json(report: ComplianceReport, answers: dict[str, str] | None = None) -> str:
    return json.dumps(report_to_dict(report, answers), indent=2, ensure_ascii=False, default=str)


def parse_json_report(text: str) -> tuple[ComplianceReport, dict[str, str] | None]:
    """Inverse of render_json. Returns the report and any follow-up answers."""
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ReportFormatError(f"Report is not valid JSON: {e}") from e
    if not isinstance(doc, dict) or not isinstance(doc.get("checks"), list):
        raise ReportFormatError("Report document has no 'checks' list")

    entries: list[tuple[str, Verdict]] = []
    for item in doc["checks"]:
        try:
            verdict = Verdict(
                kind=item["kind"],
                detail=item["detail"],
                reason_required=bool(item.get("reason_required", False)),
                evidence=dict(item.get("evidence") or {}),
            )
            entries.append((item["name"], verdict))
        except (KeyError, TypeError, ValueError) as e:
            raise ReportFormatError(f"Malformed check entry {item!r}: {e}") from e

    answers = None
    if "followup" in doc:
        try:
            answers = {str(a["question"]): str(a["answer"]) for a in doc["followup"]}
        except (KeyError, TypeError) as e:
            raise ReportFormatError(f"Malformed follow-up section: {e}") from e

    try:
        report = ComplianceReport(entries, meta=doc.get("meta") or {}, host=doc.get("host") or {})
    except ValueError as e:
        raise ReportFormatError(str(e)) from e
    return report, answers
