#!/usr/bin/env python3
"""
Planboard Regression Test and Metrics Collection

Seeds a throwaway JSON repository with synthetic courses, exercises layout
and the planner gestures end to end, and records timings and memory usage.
"""

import sys
import os
import json
import time
import asyncio
import random
import shutil
import statistics
import tempfile
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional
import argparse

import psutil

from planboard.controller import PlannerController
from planboard.gestures import MovePayload, ResizeEndPayload, encode_payload
from planboard.layout import layout_tasks
from planboard.models import UNASSIGNED_NAME, AssignmentRecord, Programmer, TaskRecord
from planboard.months import CourseWindow, month_from_number
from planboard.repository import JsonFileRepository


def _describe(durations: List[float]) -> Dict[str, float]:
    return {
        "iterations": len(durations),
        "average": statistics.mean(durations),
        "min": min(durations),
        "max": max(durations),
        "std_dev": statistics.stdev(durations) if len(durations) > 1 else 0,
    }


class PlannerRegressionTester:
    """Regression testing and metrics collection for Planboard."""

    def __init__(self, output_dir: Optional[Path] = None, task_count: int = 200, seed: int = 7):
        self.output_dir = output_dir or Path("regression_results")
        self.output_dir.mkdir(exist_ok=True)
        self.task_count = task_count
        self.random = random.Random(seed)
        self.window = CourseWindow(2023)
        self.results = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "python_version": sys.version,
            "task_count": task_count,
            "tests": [],
            "metrics": {},
            "summary": {}
        }

        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
        self.logger = logging.getLogger("planboard.regression")

        self.performance_data: List[Dict[str, Any]] = []

    def _get_memory_usage(self) -> Dict[str, Any]:
        process = psutil.Process(os.getpid())
        memory_info = process.memory_info()
        return {
            "rss": memory_info.rss,
            "vms": memory_info.vms,
            "percent": process.memory_percent()
        }

    def _timed(self, operation: str, coro_factory) -> Dict[str, Any]:
        """Run one coroutine and record its duration and memory footprint."""
        start_time = time.perf_counter()
        error = None
        try:
            result = asyncio.run(coro_factory())
        except Exception as e:
            result = None
            error = str(e)
        duration = time.perf_counter() - start_time
        metrics = {
            "operation": operation,
            "duration": duration,
            "success": error is None,
            "memory_usage": self._get_memory_usage()
        }
        if error:
            metrics["error"] = error
            self.logger.error(f"[FAIL] {operation} failed in {duration:.3f}s: {error}")
        self.performance_data.append(metrics)
        return {"result": result, "metrics": metrics, "success": error is None}

    def _finish(self, results: Dict[str, Any], success: bool) -> Dict[str, Any]:
        results["total_duration"] = time.time() - results["start_time"]
        results["success"] = success
        status = "[PASS]" if success else "[FAIL]"
        self.logger.info(f"{status} {results['test_name']} finished in {results['total_duration']:.3f}s")
        return results

    def _synthetic_data(self, root: Path) -> JsonFileRepository:
        """Fill a repository with programmers, tasks and assignments spread around the window."""
        programmers = [Programmer(str(i + 1), f"Dev {i + 1}", "#3B82F6") for i in range(8)]
        programmers.append(Programmer("99", UNASSIGNED_NAME, "#9CA3AF"))
        tasks: List[TaskRecord] = []
        assignments: List[AssignmentRecord] = []
        first = self.window.view_start - 6
        for i in range(self.task_count):
            start = first + self.random.randint(0, 20)
            end = start + self.random.randint(0, 6)
            task_id = f"T{i + 1:04d}"
            tasks.append(TaskRecord(
                id=task_id,
                requirement=f"Synthetic requirement {i + 1}",
                status="Asignado",
                start_date=month_from_number(start) if self.random.random() > 0.1 else None,
            ))
            for programmer in self.random.sample(programmers[:-1], self.random.randint(1, 2)):
                assignments.append(AssignmentRecord(task_id, programmer.id, month_from_number(end)))

        repository = JsonFileRepository(root)
        asyncio.run(repository.seed(tasks=tasks, assignments=assignments, programmers=programmers))
        return repository

    def test_complete_flow(self) -> Dict[str, Any]:
        """Load, lay out, move, resize and assign on one repository."""
        self.logger.info("Testing complete planner flow...")

        flow_results = {
            "test_name": "complete_flow",
            "steps": [],
            "start_time": time.time()
        }

        with tempfile.TemporaryDirectory() as tmp:
            repository = self._synthetic_data(Path(tmp))
            controller = PlannerController(repository, user="regression")

            async def load_and_layout():
                await controller.refresh()
                return controller.layout(self.window)

            step = self._timed("load_and_layout", load_and_layout)
            flow_results["steps"].append(step["metrics"])
            lanes = step["result"] or []
            placement = next((p for lane in lanes for p in lane.placements() if p.movable), None)
            source_lane = next((lane for lane in lanes if placement and lane.find(placement.task_id)), None)

            if placement is not None and source_lane is not None:
                target = self.window.months[min(placement.end_index + 1, 11)]
                move_data = encode_payload(MovePayload(placement.task_id, source_lane.programmer.name))
                step = self._timed(
                    "drop_move",
                    lambda: controller.handle_drop(move_data, "Dev 1", target),
                )
                flow_results["steps"].append(step["metrics"])

                resize_data = encode_payload(ResizeEndPayload(placement.task_id))
                step = self._timed(
                    "drop_resize_end",
                    lambda: controller.handle_drop(resize_data, "Dev 1", self.window.months[11]),
                )
                flow_results["steps"].append(step["metrics"])

            step = self._timed(
                "assign_to_planner",
                lambda: controller.assign_to_planner(["T0001", "T0002"], "Dev 2", self.window.months[5]),
            )
            flow_results["steps"].append(step["metrics"])

            step = self._timed("list_activity", lambda: repository.list_activity_log(limit=10))
            flow_results["steps"].append(step["metrics"])
            flow_results["activity_entries"] = len(step["result"] or [])

        return self._finish(flow_results, all(s["success"] for s in flow_results["steps"]))

    def test_performance_benchmarks(self, iterations: int = 5) -> Dict[str, Any]:
        """Time pure layout against growing task counts."""
        self.logger.info("Running layout benchmarks...")

        benchmark_results = {
            "test_name": "performance_benchmarks",
            "benchmarks": [],
            "start_time": time.time()
        }

        with tempfile.TemporaryDirectory() as tmp:
            repository = self._synthetic_data(Path(tmp))
            controller = PlannerController(repository)
            asyncio.run(controller.refresh())
            tasks = controller.state.tasks
            programmers = controller.state.programmers

            for size in sorted({max(1, len(tasks) // 4), max(1, len(tasks) // 2), len(tasks)}):
                subset = tasks[:size]
                times = []
                for _ in range(iterations):
                    start_time = time.perf_counter()
                    layout_tasks(subset, programmers, self.window)
                    times.append(time.perf_counter() - start_time)
                benchmark_results["benchmarks"].append({
                    "operation": "layout_tasks",
                    "tasks": size,
                    "times": times,
                    **_describe(times),
                })

        return self._finish(benchmark_results, True)

    def test_error_handling(self) -> Dict[str, Any]:
        """Gestures that must be rejected without touching storage."""
        self.logger.info("Testing rejected gestures...")

        error_results = {
            "test_name": "error_handling",
            "tests": [],
            "start_time": time.time()
        }

        with tempfile.TemporaryDirectory() as tmp:
            repository = self._synthetic_data(Path(tmp))
            controller = PlannerController(repository)
            cases = {
                "unknown_task": lambda: controller.on_task_move("missing", "Dev 1", "Dev 2", "2023-10"),
                "invalid_month": lambda: controller.on_task_move("T0001", "Dev 1", "Dev 2", "2023-13x"),
                "unassigned_target": lambda: controller.on_task_move("T0001", "Dev 1", UNASSIGNED_NAME, "2023-10"),
                "garbage_payload": lambda: controller.handle_drop("not json", "Dev 1", "2023-10"),
                "inverted_resize": lambda: controller.on_task_resize("T0001", start_month="2099-01"),
            }
            for name, factory in cases.items():
                outcome = self._timed(f"reject_{name}", factory)
                result = outcome["result"] or {}
                error_results["tests"].append({
                    "test": name,
                    "duration": outcome["metrics"]["duration"],
                    "success": outcome["success"] and result.get("accepted") is False,
                    "expected_error": True
                })

        return self._finish(error_results, all(t["success"] for t in error_results["tests"]))

    def collect_system_metrics(self) -> Dict[str, Any]:
        """Collect system and performance metrics."""
        self.logger.info("Collecting system metrics...")

        metrics = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "python_version": sys.version,
            "platform": sys.platform,
            "memory": self._get_memory_usage(),
            "cpu_count": psutil.cpu_count(),
        }

        disk_usage = shutil.disk_usage(Path(__file__).parent)
        metrics["disk"] = {
            "total": disk_usage.total,
            "used": disk_usage.used,
            "free": disk_usage.free
        }

        operation_metrics: Dict[str, List[float]] = {}
        for metric in self.performance_data:
            operation_metrics.setdefault(metric["operation"], []).append(metric["duration"])

        for operation, durations in operation_metrics.items():
            metrics[f"{operation}_performance"] = _describe(durations)

        self.logger.info("[PASS] System metrics collected")
        return metrics

    def _summarize(self, started: float) -> None:
        passed_tests = sum(1 for test in self.results["tests"] if test.get("success", False))
        total_tests = len(self.results["tests"])
        self.results["summary"] = {
            "total_duration": time.time() - started,
            "total_tests": total_tests,
            "passed_tests": passed_tests,
            "failed_tests": total_tests - passed_tests,
            "success_rate": passed_tests / total_tests if total_tests > 0 else 0,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    def run_regression_tests(self, quick: bool = False) -> Dict[str, Any]:
        """Run all regression tests."""
        self.logger.info("Starting regression tests...")
        start_time = time.time()

        self.results["tests"].append(self.test_complete_flow())
        if not quick:
            self.results["tests"].append(self.test_performance_benchmarks())
            self.results["tests"].append(self.test_error_handling())
        self.results["metrics"] = self.collect_system_metrics()
        self._summarize(start_time)

        summary = self.results["summary"]
        self.logger.info(f"Regression tests completed in {summary['total_duration']:.3f}s")
        self.logger.info(
            f"Results: {summary['passed_tests']}/{summary['total_tests']} tests passed ({summary['success_rate']:.1%})"
        )
        return self.results

    def save_results(self) -> Path:
        """Save regression test results to file."""
        results_file = self.output_dir / f"regression_results_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"

        with open(results_file, 'w') as f:
            json.dump(self.results, f, indent=2)

        self.logger.info(f"Results saved to {results_file}")
        return results_file

    def generate_report(self) -> Path:
        """Generate a human-readable regression report."""
        report_file = self.output_dir / f"regression_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
        summary = self.results["summary"]

        with open(report_file, 'w', encoding='utf-8') as f:
            f.write("Planboard Regression Test Report\n")
            f.write("=" * 50 + "\n\n")
            f.write(f"Timestamp: {self.results['timestamp']}\n")
            f.write(f"Python Version: {self.results['python_version']}\n")
            f.write(f"Synthetic tasks: {self.task_count}\n\n")

            f.write("SUMMARY\n")
            f.write("-" * 15 + "\n")
            f.write(f"Tests: {summary['passed_tests']}/{summary['total_tests']} passed\n")
            f.write(f"Duration: {summary.get('total_duration', 0):.3f}s\n\n")

            for test in self.results["tests"]:
                status = "PASS" if test.get("success") else "FAIL"
                f.write(f"[{status}] {test['test_name']} ({test.get('total_duration', 0):.3f}s)\n")
                for bench in test.get("benchmarks", []):
                    f.write(
                        f"    {bench['operation']} x{bench['tasks']}: "
                        f"avg {bench['average'] * 1000:.2f} ms, max {bench['max'] * 1000:.2f} ms\n"
                    )
            f.write("\n")

            memory = self.results["metrics"].get("memory")
            if memory:
                f.write("MEMORY USAGE\n")
                f.write("-" * 15 + "\n")
                f.write(f"RSS: {memory['rss'] / 1024 / 1024:.1f} MB\n")
                f.write(f"Percent: {memory['percent']:.2f}%\n")

        self.logger.info(f"Report generated: {report_file}")
        return report_file


def main():
    """Main entry point for regression testing."""
    parser = argparse.ArgumentParser(description="Planboard Regression Testing")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("regression_results"),
        help="Output directory for results"
    )
    parser.add_argument(
        "--tasks",
        type=int,
        default=200,
        help="Number of synthetic tasks to seed"
    )
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Run the complete flow test only"
    )

    args = parser.parse_args()

    tester = PlannerRegressionTester(args.output_dir, task_count=args.tasks)
    tester.run_regression_tests(quick=args.quick)
    tester.save_results()
    tester.generate_report()

    success = tester.results["summary"]["success_rate"] == 1.0
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
