import json, os, re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

SUCCESS = "success"
FAILURE = "failure"
_ANSI_RX = re.compile(r"\x1b\[[0-9;]*m")


@dataclass(frozen=True)
class TestResult:
    status: str
    product_name: str
    lot_number: str
    file: Optional[str] = None
    error: Optional[str] = None

    __test__ = False  # keep pytest from collecting this as a test class

    def __post_init__(self):
        if self.status == SUCCESS and (self.file is None or self.error is not None):
            raise ValueError("a success result carries a file and no error")
        if self.status == FAILURE and (self.error is None or self.file is not None):
            raise ValueError("a failure result carries an error and no file")
        if self.status not in (SUCCESS, FAILURE):
            raise ValueError(f"unknown status: {self.status!r}")

    @classmethod
    def success(cls, product_name, lot_number, file):
        return cls(SUCCESS, product_name, lot_number, file=file)

    @classmethod
    def failure(cls, product_name, lot_number, error):
        return cls(FAILURE, product_name, lot_number, error=error)

    @property
    def ok(self):
        return self.status == SUCCESS

    def to_dict(self):
        out = {"status": self.status, "productName": self.product_name, "lotNumber": self.lot_number}
        if self.ok:
            out["file"] = self.file
        else:
            out["error"] = self.error
        return out


@dataclass
class ProductReport:
    product_name: str
    results: List[TestResult] = field(default_factory=list)
    fatal_error: Optional[str] = None

    def add(self, result: TestResult):
        if result.product_name != self.product_name:
            raise ValueError(f"result for {result.product_name} added to {self.product_name} report")
        self.results.append(result)

    @property
    def successes(self):
        return [r for r in self.results if r.ok]

    @property
    def failures(self):
        return [r for r in self.results if not r.ok]

    @property
    def failed(self):
        return bool(self.failures) or self.fatal_error is not None

    def failures_by_lot(self):
        grouped = {}
        for r in self.failures:
            grouped.setdefault(r.lot_number, []).append(r.error)
        return grouped

    def message(self):
        if self.failed:
            status = "FAILURE"
        elif not self.results:
            status = "EMPTY"
        else:
            status = "SUCCESS"
        lines = [
            f"[COA] {self.product_name}: {status}",
            f"success {len(self.successes)} / failure {len(self.failures)} / total {len(self.results)}",
        ]
        if self.fatal_error:
            lines.append(f"run aborted: {self.fatal_error}")
        if self.failures:
            lines.append("failed lots:")
            for lot, errors in self.failures_by_lot().items():
                lines.append(f"  - {lot}: {_one_line(errors[-1])}")
        if self.successes:
            lines.append("passed lots: " + ", ".join(r.lot_number for r in self.successes))
        return "\n".join(lines)


class SuiteSummary:
    """Per-product reports for one suite run plus the files written from them."""

    def __init__(self):
        self.reports: List[ProductReport] = []
        self.error: Optional[str] = None  # set when the run itself crashed

    def add_report(self, report: ProductReport):
        self.reports.append(report)

    @property
    def results(self):
        return [r for rep in self.reports for r in rep.results]

    @property
    def success_count(self):
        return sum(1 for r in self.results if r.ok)

    @property
    def failure_count(self):
        return sum(1 for r in self.results if not r.ok)

    @property
    def aborted(self):
        return [rep for rep in self.reports if rep.fatal_error is not None]

    @property
    def outcome(self):
        if self.error or self.failure_count or self.aborted:
            return "failed"
        if not self.results:
            return "empty"
        return "passed"

    def exit_code(self):
        return {"passed": 0, "failed": 1, "empty": 3}[self.outcome]

    def failure_message(self):
        if self.outcome == "empty":
            return "no lots were processed; the run is inconclusive"
        if self.outcome == "passed":
            return f"all {len(self.results)} lots passed"
        lines = [f"{self.failure_count} lot(s) failed, {len(self.aborted)} product run(s) aborted:"]
        for r in self.results:
            if not r.ok:
                lines.append(f"  - product: {r.product_name}, lot: {r.lot_number}, error: {_one_line(r.error)}")
        for rep in self.aborted:
            lines.append(f"  - product: {rep.product_name} aborted: {_one_line(rep.fatal_error)}")
        if self.error:
            lines.append(f"  - run crashed: {_one_line(self.error)}")
        return "\n".join(lines)

    def issue_body(self):
        total = len(self.results)
        rate = f"{self.success_count / total * 100:.2f}" if total else "100.00"
        md = ""
        if self.error:
            md += "## 🚨 Test execution error\n\n"
            md += "The run crashed before it finished; results below are partial.\n\n"
            md += f"```\n{str(self.error).strip()}\n```\n\n"
        md += "## E2E test result summary\n\n"
        md += f"- **Total lots:** {total}\n"
        md += f"- **Passed:** {self.success_count}\n"
        md += f"- **Failed:** {self.failure_count}\n"
        md += f"- **Success rate:** {rate}%\n\n"
        if self.failure_count:
            md += "### Failed lots\n\n"
            md += "| Product | Lot | Reason |\n"
            md += "|---|---|---|\n"
            for r in self.results:
                if not r.ok:
                    md += f"| {r.product_name} | {r.lot_number} | {_table_cell(r.error)} |\n"
        if self.aborted:
            md += "\n### Aborted product runs\n\n"
            for rep in self.aborted:
                md += f"- **{rep.product_name}:** {_table_cell(rep.fatal_error)}\n"
        return md

    def write(self, results_dir, env=None):
        env = os.environ if env is None else env
        results_dir = Path(results_dir)
        results_dir.mkdir(parents=True, exist_ok=True)
        (results_dir / "summary.json").write_text(
            json.dumps([r.to_dict() for r in self.results], ensure_ascii=False, indent=2), encoding="utf-8")
        ok_lines = [f"{r.product_name}\t{r.lot_number}\t{r.file}" for r in self.results if r.ok]
        bad_lines = [f"{r.product_name}\t{r.lot_number}\t{_one_line(r.error)}" for r in self.results if not r.ok]
        bad_lines += [f"{rep.product_name}\t-\taborted: {_one_line(rep.fatal_error)}" for rep in self.aborted]
        if self.error:
            bad_lines.append(f"-\t-\trun crashed: {_one_line(self.error)}")
        (results_dir / "success.txt").write_text("\n".join(ok_lines) + ("\n" if ok_lines else ""), encoding="utf-8")
        (results_dir / "failure.txt").write_text("\n".join(bad_lines) + ("\n" if bad_lines else ""), encoding="utf-8")
        body = self.issue_body()
        if self.outcome == "failed":
            (results_dir / "issue-body.md").write_text(body, encoding="utf-8")
        step_summary = env.get("GITHUB_STEP_SUMMARY")
        if step_summary:
            with open(step_summary, "a", encoding="utf-8") as fh:
                fh.write(body)


def _one_line(text):
    return _ANSI_RX.sub("", str(text or "")).replace("\r", " ").replace("\n", " ").strip()


def _table_cell(text):
    return _one_line(text).replace("|", "&#124;")
