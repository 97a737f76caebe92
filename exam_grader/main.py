"""
Exam Grader CLI Application.

Provides a command-line interface for parsing exam papers, grading answers
and whole exams with an LLM, repairing JSON, reviewing exam results and
writing personalised student reports.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from exam_grader.config import Settings, get_settings
from exam_grader.exams import (
    AnalyticsError,
    ExamGradingError,
    ExamNotFoundError,
    ExamStatusDriver,
    JsonFileExamRepository,
    StudentReportGenerator,
    analyze_exam_results,
)
from exam_grader.extractors import IMAGE_MIME_TYPES, ExtractionError, extract_document, load_exam_images
from exam_grader.grading import (
    BatchOrchestrator,
    GradingEngine,
    JSONRepairService,
    LLMClient,
    LLMError,
    ScoringError,
)
from exam_grader.models import GradingRequest, GradingResult, ParsedExam, StudentReport
from exam_grader.parsing import ExamParser, ExamValidator

app = typer.Typer(
    name="exam-grader",
    help="LLM-backed grading of free-text exam answers",
    add_completion=False,
)

console = Console()

STORE_FILENAME = "exam_store.json"


def _configure_logging(settings: Settings, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _build_client(settings: Settings) -> LLMClient:
    if not settings.llm_api_key:
        console.print("[red]Error:[/red] GRADER_LLM_API_KEY is not configured")
        raise typer.Exit(1)
    return LLMClient(
        settings.client_config(),
        settings.retry_policy(),
        temperature=settings.llm_temperature,
    )


def _open_store(settings: Settings, store: Optional[Path]) -> JsonFileExamRepository:
    return JsonFileExamRepository(store or settings.output_directory / STORE_FILENAME)


@app.command()
def parse_exam(
    files: Annotated[List[Path], typer.Argument(help="Exam paper file, or page images in order")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the parsed questions as JSON"),
    ] = None,
    images: Annotated[
        bool,
        typer.Option("--images", help="Send pages as images (for scanned papers)"),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    """
    Extract questions, standard answers and scores from an exam paper.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)

    for file in files:
        if not file.exists():
            console.print(f"[red]Error:[/red] File not found: {file}")
            raise typer.Exit(1)

    use_images = images or all(f.suffix.lower() in IMAGE_MIME_TYPES for f in files)
    if not use_images and len(files) != 1:
        console.print("[red]Error:[/red] Pass a single document, or use --images")
        raise typer.Exit(1)

    page_urls: Optional[list[str]] = None
    content: Optional[str] = None
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Reading exam paper...", total=None)
            if use_images:
                page_urls = load_exam_images(files)
            else:
                content = extract_document(files[0]).content

            progress.update(task, description="Parsing questions... (this may take a moment)")
            parsed = asyncio.run(_parse(settings, page_urls, content))
    except ExtractionError as e:
        console.print(f"[red]Extraction Error:[/red] {e}")
        raise typer.Exit(1)

    if not parsed.success:
        console.print(f"[red]Parse Error:[/red] {parsed.error}")
        raise typer.Exit(1)

    _display_parsed_exam(parsed)

    is_valid, issues = ExamValidator().validate(parsed)
    if not is_valid:
        console.print("\n[yellow]⚠ Review these issues before grading:[/yellow]")
        for issue in issues:
            console.print(f"  • {issue}")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(parsed.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"\n[green]Questions saved to:[/green] {output}")


async def _parse(settings: Settings, page_urls: Optional[list[str]], content: Optional[str]) -> ParsedExam:
    async with _build_client(settings) as client:
        parser = ExamParser(client, settings.max_content_length)
        if page_urls is not None:
            return await parser.parse_images(page_urls)
        return await parser.parse_text(content or "")


@app.command()
def grade_answer(
    question: Annotated[str, typer.Option("--question", "-q", help="Question text")],
    standard_answer: Annotated[str, typer.Option("--standard", "-s", help="Standard answer")],
    answer: Annotated[str, typer.Option("--answer", "-a", help="Student answer")],
    max_score: Annotated[float, typer.Option("--max-score", "-m", help="Maximum score", min=0.01)],
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    """
    Grade a single answer against a standard answer.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)

    request = GradingRequest(
        question=question,
        standard_answer=standard_answer,
        candidate_answer=answer,
        max_score=max_score,
    )

    async def run() -> GradingResult:
        async with _build_client(settings) as client:
            return await GradingEngine(client, settings).grade_answer(request)

    try:
        with console.status("Grading..."):
            result = asyncio.run(run())
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)
    except ScoringError as e:
        console.print(f"[red]Scoring Error:[/red] {e}")
        raise typer.Exit(1)

    _display_result(result, max_score, settings.low_confidence_threshold)


@app.command()
def grade_exam(
    bundle: Annotated[
        Optional[Path],
        typer.Argument(help="Exam bundle JSON (exams, questions, answers) to import first"),
    ] = None,
    exam_id: Annotated[
        Optional[str],
        typer.Option("--exam", "-e", help="Grade only this exam"),
    ] = None,
    store: Annotated[
        Optional[Path],
        typer.Option("--store", help="Exam store file (defaults to the output directory)"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    """
    Grade every ungraded answer of one or more exams in throttled batches.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)
    repository = _open_store(settings, store)

    exam_ids: list[str] = []
    if bundle is not None:
        if not bundle.exists():
            console.print(f"[red]Error:[/red] Bundle not found: {bundle}")
            raise typer.Exit(1)
        try:
            exam_ids = [exam.id for exam in repository.import_bundle(bundle).exams]
        except ValueError as e:
            console.print(f"[red]Invalid bundle:[/red] {e}")
            raise typer.Exit(1)
    if exam_id:
        exam_ids = [exam_id]
    if not exam_ids:
        console.print("[red]Error:[/red] Nothing to grade: pass a bundle or --exam")
        raise typer.Exit(1)

    async def run() -> list:
        async with _build_client(settings) as client:
            engine = GradingEngine(client, settings)
            driver = ExamStatusDriver(
                repository, BatchOrchestrator(engine, settings.batch_policy()), engine
            )
            return [await driver.grade_exam(eid) for eid in exam_ids]

    try:
        with console.status(f"Grading {len(exam_ids)} exam(s)..."):
            summaries = asyncio.run(run())
    except ExamGradingError as e:
        console.print(f"[red]Grading Error:[/red] exam {e.exam_id}: {e}")
        raise typer.Exit(1)

    table = Table(title="Grading Summary")
    table.add_column("Exam", style="cyan")
    table.add_column("Status")
    table.add_column("Graded", justify="right")
    table.add_column("Manual review", justify="right")
    table.add_column("Remaining", justify="right")
    for summary in summaries:
        table.add_row(
            summary.exam_id,
            summary.status.value,
            str(summary.graded_count),
            str(summary.fallback_count),
            str(summary.remaining_count),
        )
    console.print(table)
    console.print(f"[dim]Grades stored in {repository.path}[/dim]")


@app.command()
def override(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    question_id: Annotated[str, typer.Argument(help="Question id")],
    student_id: Annotated[str, typer.Argument(help="Student id")],
    score: Annotated[Optional[float], typer.Option("--score", help="New score")] = None,
    feedback: Annotated[Optional[str], typer.Option("--feedback", help="New feedback")] = None,
    store: Annotated[Optional[Path], typer.Option("--store", help="Exam store file")] = None,
) -> None:
    """
    Replace an AI grade with a teacher's judgment.
    """
    settings = get_settings()
    repository = _open_store(settings, store)
    driver = ExamStatusDriver(repository, orchestrator=None, engine=None)  # type: ignore[arg-type]

    try:
        grade = driver.update_grade(
            exam_id, question_id, student_id, score=score, feedback=feedback
        )
    except (ExamNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {student_id} / {question_id}: {grade.score:g} "
        f"(AI: {grade.ai_score if grade.ai_score is not None else '-'}) graded by {grade.graded_by.value}"
    )


@app.command()
def analyze(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    store: Annotated[Optional[Path], typer.Option("--store", help="Exam store file")] = None,
) -> None:
    """
    Show score statistics and question difficulty for a graded exam.
    """
    settings = get_settings()
    repository = _open_store(settings, store)

    try:
        analytics = analyze_exam_results(
            exam_id,
            repository.list_questions(exam_id),
            repository.list_grades(exam_id),
            settings.passing_ratio,
        )
    except AnalyticsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"Students: {analytics.student_count}\n"
            f"Average: {analytics.average_score:.1f} / {analytics.total_possible_score:g}\n"
            f"Passing rate: {analytics.passing_rate:.1f}%\n"
            f"Highest: {analytics.highest_score:g}  Lowest: {analytics.lowest_score:g}",
            title=f"Exam {exam_id}",
        )
    )

    table = Table(title="Question Difficulty")
    table.add_column("#", justify="right")
    table.add_column("Question", style="cyan")
    table.add_column("Average", justify="right")
    table.add_column("Difficulty", justify="right")
    for q in analytics.question_difficulty:
        table.add_row(
            str(q.question_number),
            q.question_id,
            f"{q.avg_score:.1f}/{q.max_score:g}",
            f"{q.difficulty_rate:.0f}%",
        )
    console.print(table)


@app.command()
def report(
    exam_id: Annotated[str, typer.Argument(help="Exam id")],
    student_id: Annotated[str, typer.Argument(help="Student id")],
    store: Annotated[Optional[Path], typer.Option("--store", help="Exam store file")] = None,
) -> None:
    """
    Generate and store personalised feedback for one student.
    """
    settings = get_settings()
    _configure_logging(settings, verbose=False)
    repository = _open_store(settings, store)
    try:
        repository.get_exam(exam_id)
    except ExamNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    async def run() -> StudentReport:
        async with _build_client(settings) as client:
            return await StudentReportGenerator(client).create_report(
                repository, exam_id, student_id
            )

    try:
        student_report = asyncio.run(run())
    except (ExamNotFoundError, AnalyticsError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(
        Panel(
            student_report.feedback,
            title=f"{student_id} / exam {exam_id}: "
            f"{student_report.total_score:g} / {student_report.total_possible_score:g}",
        )
    )
    for heading, style, items in (
        ("Strengths", "green", student_report.strengths),
        ("Needs improvement", "yellow", student_report.weaknesses),
    ):
        if items:
            console.print(f"\n[bold {style}]{heading}:[/bold {style}]")
            for item in items:
                console.print(f"  • {item}")
    console.print(f"\n[dim]Report stored in {repository.path}[/dim]")


@app.command()
def fix_json(
    file: Annotated[Path, typer.Argument(help="File containing the broken JSON")],
    error_message: Annotated[
        Optional[str], typer.Option("--error", help="Parser error message")
    ] = None,
) -> None:
    """
    Repair a malformed JSON document with the model and print it.
    """
    settings = get_settings()
    _configure_logging(settings, verbose=False)

    if not file.exists():
        console.print(f"[red]Error:[/red] File not found: {file}")
        raise typer.Exit(1)
    broken = file.read_text(encoding="utf-8")

    if error_message is None:
        try:
            json.loads(broken)
            console.print("[green]✓ JSON is already valid[/green]")
            return
        except json.JSONDecodeError as e:
            error_message = str(e)

    async def run() -> str:
        async with _build_client(settings) as client:
            return await JSONRepairService(client).repair(broken, error_message)

    try:
        fixed = asyncio.run(run())
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(fixed)


@app.command()
def health() -> None:
    """
    Check if the grading system is operational.

    Verifies API connectivity and configuration.
    """
    settings = get_settings()
    console.print("[bold]Exam Grader Health Check[/bold]\n")

    console.print("[dim]Checking configuration...[/dim]")
    console.print(f"  API Base URL: {settings.llm_base_url}")
    console.print(f"  Model: {settings.llm_model}")
    console.print(f"  Batch size: {settings.batch_size} (delay {settings.batch_delay:g}s)")
    console.print(f"  Retries: {settings.retry_max_attempts} attempts")

    async def run() -> bool:
        async with _build_client(settings) as client:
            return await client.health_check()

    console.print("\n[dim]Checking API connectivity...[/dim]")
    if asyncio.run(run()):
        console.print("[green]✓ API is reachable[/green]")
    else:
        console.print("[red]✗ API is not reachable[/red]")
        raise typer.Exit(1)

    console.print("\n[green]All systems operational[/green]")


def _display_result(result: GradingResult, max_score: float, threshold: float) -> None:
    """Display a grading result with its scoring points."""
    percentage = result.score / max_score * 100
    color = "green" if percentage >= 70 else "yellow" if percentage >= 50 else "red"
    console.print(
        Panel(
            f"[{color}][bold]{result.score:g} / {max_score:g}[/bold] ({percentage:.1f}%)[/{color}]\n"
            f"Confidence: {result.confidence:.0f}%",
            title="Score",
        )
    )

    if result.needs_review(threshold):
        console.print("[yellow]⚠ Low confidence: this result should be reviewed by a teacher[/yellow]")

    if result.scoring_points:
        table = Table(title="Scoring Points")
        table.add_column("Point", style="cyan")
        table.add_column("Status")
        table.add_column("Comment")
        icons = {"correct": "✅", "partially": "⚠️", "incorrect": "❌"}
        for sp in result.scoring_points:
            table.add_row(sp.point, f"{icons[sp.status.value]} {sp.status.value}", sp.comment)
        console.print(table)

    console.print(Panel(result.feedback, title="Feedback"))


def _display_parsed_exam(parsed: ParsedExam) -> None:
    table = Table(title=f"Parsed Exam ({len(parsed.questions)} questions)")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Score", justify="right")
    table.add_column("Question")
    table.add_column("Answer")
    for q in parsed.questions:
        table.add_row(q.id, q.type.value, f"{q.score:g}", q.content[:60], q.answer[:40])
    console.print(table)
    console.print(f"\n[bold]Total Score:[/bold] {parsed.total_score:g}")


if __name__ == "__main__":
    app()
