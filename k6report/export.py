import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.chart import LineChart, Reference
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from . import __version__
from .models import GroupSummary, ReportModel

HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
CENTER = Alignment(horizontal="center", vertical="center")
PASS_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
FAIL_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")


def _format_time(ms: Optional[int]) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


# =========================
# SUMMARY JSON GENERATION
# =========================

def report_document(report: ReportModel,
                    test_name: str,
                    environment: str,
                    threshold_result: Optional[Dict[str, Any]] = None,
                    include_samples: bool = False) -> Dict[str, Any]:
    return {
        "metadata": {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "test_name": test_name,
            "environment": environment,
        },
        "report": report.to_dict(include_samples=include_samples),
        "thresholds": threshold_result,
    }


def write_report_json(report: ReportModel,
                      output_path: str,
                      test_name: str = "k6 Load Test",
                      environment: str = "Unknown",
                      threshold_result: Optional[Dict[str, Any]] = None,
                      include_samples: bool = False) -> str:
    document = report_document(report, test_name, environment, threshold_result, include_samples)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, default=str)
    return output_path


# =========================
# EXCEL EXPORT
# =========================

def _write_header(ws, headers: List[str], row: int = 1) -> None:
    for col, header in enumerate(headers, start=1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = BORDER
        cell.alignment = CENTER


def _write_rows(ws, rows: List[List[Any]], start_row: int = 2) -> None:
    for i, row in enumerate(rows, start=start_row):
        for col, value in enumerate(row, start=1):
            ws.cell(row=i, column=col, value=value).border = BORDER


def _set_widths(ws, widths: List[int]) -> None:
    for col, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(col)].width = width


def _group_sheet(wb: Workbook, title: str, groups: List[GroupSummary], api: bool = False) -> None:
    ws = wb.create_sheet(title=title)
    headers = ["Name"]
    if api:
        headers += ["Method", "URL"]
    headers += ["Count", "Avg (ms)", "Min (ms)", "P95 (ms)", "Max (ms)", "Errors", "Error Rate"]
    _write_header(ws, headers)

    rows = []
    for g in groups:
        row = [g.name]
        if api:
            row += [g.method, g.url]
        row += [
            g.count,
            g.avg_duration_ms,
            g.min_duration_ms,
            g.p95_duration_ms,
            g.max_duration_ms,
            g.error_count,
            f"{g.error_rate * 100:.2f}%",
        ]
        rows.append(row)
    _write_rows(ws, rows)

    if rows:
        ws.auto_filter.ref = ws.dimensions
    _set_widths(ws, [30] + ([10, 50] if api else []) + [12] * 7)


def export_to_excel(report: ReportModel,
                    output_path: str,
                    test_name: str = "k6 Load Test",
                    environment: str = "Unknown",
                    threshold_result: Optional[Dict[str, Any]] = None) -> str:
    """Write the report model to a workbook with one tab per view."""
    wb = Workbook()
    wb.remove(wb.active)

    # 1. SUMMARY TAB
    ws = wb.create_sheet(title="Summary")
    ws.sheet_view.showGridLines = False
    ws.merge_cells("A1:D1")
    ws["A1"] = f"K6 PERFORMANCE TEST REPORT - {test_name}"
    ws["A1"].font = Font(size=16, bold=True, color="366092")

    overall = report.overall
    info = [
        ["Test Name:", test_name],
        ["Environment:", environment],
        ["Start Time:", _format_time(report.start_ms)],
        ["End Time:", _format_time(report.end_ms)],
        ["Duration:", f"{report.duration_s:.0f} seconds"],
        ["Total Requests:", report.total_requests],
        ["Avg Response (ms):", overall.avg_duration_ms if overall else "-"],
        ["P95 Response (ms):", overall.p95_duration_ms if overall else "-"],
        ["Error Rate:", f"{overall.error_rate * 100:.2f}%" if overall else "-"],
    ]
    if threshold_result is not None:
        info.append(["Thresholds:", "PASS" if threshold_result["overall_status"] else "FAIL"])
    for i, (label, value) in enumerate(info, start=3):
        ws[f"A{i}"] = label
        ws[f"A{i}"].font = Font(bold=True)
        ws[f"B{i}"] = value
    _set_widths(ws, [22, 30, 20, 20])

    if threshold_result and threshold_result["rows"]:
        start = len(info) + 5
        _write_header(ws, ["Metric", "Check", "Target", "Actual", "Status"], row=start)
        row_num = start + 1
        for row in threshold_result["rows"]:
            for check in row["checks"]:
                values = [row["label"], check["metric"], check["target"], check["actual"],
                          "PASS" if check["status"] else "FAIL"]
                for col, value in enumerate(values, start=1):
                    ws.cell(row=row_num, column=col, value=value).border = BORDER
                ws.cell(row=row_num, column=5).fill = PASS_FILL if check["status"] else FAIL_FILL
                row_num += 1

    # 2. GROUP TABS
    _group_sheet(wb, "By API", report.by_api, api=True)
    _group_sheet(wb, "By Scenario", report.by_scenario)
    _group_sheet(wb, "By Page", report.by_page)

    # 3. ERRORS TAB
    ws_errors = wb.create_sheet(title="Errors")
    _write_header(ws_errors, ["API", "Status", "Code", "Message", "Duration (ms)"])
    error_rows = [
        [g.name, str(e.status), str(e.code), e.message, e.duration_ms]
        for g in report.by_api
        for e in g.errors
    ]
    _write_rows(ws_errors, error_rows)
    _set_widths(ws_errors, [30, 10, 12, 60, 14])

    # 4. TREND TAB
    ws_trend = wb.create_sheet(title="Trend")
    _write_header(ws_trend, ["Time", "Duration (ms)"])
    _write_rows(ws_trend, [[_format_time(p.time_ms), p.avg_duration_ms] for p in report.trend])
    _set_widths(ws_trend, [22, 14])
    if report.trend:
        chart = LineChart()
        chart.title = "Response Time Over Time"
        chart.y_axis.title = "Duration (ms)"
        chart.x_axis.title = "Time"
        last = len(report.trend) + 1
        chart.add_data(Reference(ws_trend, min_col=2, min_row=1, max_row=last), titles_from_data=True)
        chart.set_categories(Reference(ws_trend, min_col=1, min_row=2, max_row=last))
        ws_trend.add_chart(chart, "D2")

    # 5. VU TREND TAB
    ws_vu = wb.create_sheet(title="VU Trend")
    vus = list(report.vu_trend)
    _write_header(ws_vu, ["Time"] + [f"VU {vu}" for vu in vus])
    vu_rows = []
    for i, time_ms in enumerate(report.vu_axis):
        vu_rows.append([_format_time(time_ms)] + [report.vu_trend[vu][i].avg_duration_ms for vu in vus])
    _write_rows(ws_vu, vu_rows)
    if vu_rows:
        chart = LineChart()
        chart.title = "Response Time per Virtual User"
        chart.y_axis.title = "Avg Duration (ms)"
        chart.x_axis.title = "Time"
        last = len(vu_rows) + 1
        chart.add_data(Reference(ws_vu, min_col=2, max_col=len(vus) + 1, min_row=1, max_row=last),
                       titles_from_data=True)
        chart.set_categories(Reference(ws_vu, min_col=1, min_row=2, max_row=last))
        chart.display_blanks = "gap"
        ws_vu.add_chart(chart, f"{get_column_letter(len(vus) + 3)}2")

    # 6. TIME SERIES TAB
    ws_ts = wb.create_sheet(title="Time Series")
    _write_header(ws_ts, ["Time", "Requests", "Avg Response (ms)", "Errors", "Active VUs"])
    _write_rows(ws_ts, [
        [_format_time(b.time_ms), b.requests, b.avg_duration_ms, b.errors, b.active_vus]
        for b in report.timeseries
    ])
    _set_widths(ws_ts, [22, 10, 18, 10, 12])

    wb.save(output_path)
    return output_path
