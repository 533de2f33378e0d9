"""Interactive CLI application."""
import argparse
import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from quiz_master.config import AppConfig, load_config
from quiz_master.controller import QuizController
from quiz_master.dashboard import (
    aggregate_progress, get_feedback_color, get_feedback_label, get_subject_stats,
    INSUFFICIENT_HISTORY, NO_HISTORY,
)
from quiz_master.errors import GenerationError, QuizMasterError, ValidationError
from quiz_master.generator import GeminiQuestionGenerator, Language
from quiz_master.importer import read_study_text
from quiz_master.models import Question, QuizState

console = Console()

EXIT_WORDS = ("q", "menu")
PASTE_TERMINATOR = "END"


class SessionExitRequested(Exception):
    """Raised when the user types 'q' or 'menu' during a quiz."""


class MissingKeyGenerator:
    """Stands in for Gemini when no API key is configured; every call fails."""

    def generate(self, text: str, language: Language) -> list:
        raise GenerationError("GEMINI_API_KEY is not set; only saved subjects can be quizzed.")


def setup_logging(verbose: bool = False) -> None:
    level = os.environ.get("QUIZ_MASTER_LOG_LEVEL") or ("DEBUG" if verbose else "WARNING")
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def build_generator(config: AppConfig):
    if not config.gemini_api_key:
        return MissingKeyGenerator()
    return GeminiQuestionGenerator(
        config.gemini_api_key, config.gemini_models, min_text_length=config.min_text_length,
    )


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def parse_selection(raw: str, options) -> frozenset:
    """Turn "1,3" or "1 3" into the set of chosen option texts."""
    picks = raw.replace(",", " ").split()
    if not picks:
        raise ValidationError("Select at least one option.")
    chosen = set()
    for pick in picks:
        if not pick.isdigit() or not 1 <= int(pick) <= len(options):
            raise ValidationError(f"Pick option numbers between 1 and {len(options)}.")
        chosen.add(options[int(pick) - 1])
    return frozenset(chosen)


def show_welcome():
    console.print(Panel(
        "[bold]Quiz Master[/bold]\n[dim]Paste your study material to create a practice quiz.[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_subjects(controller: QuizController) -> None:
    if not controller.subjects:
        console.print("[dim]No subjects saved yet. Create one to get started![/dim]")
        return
    table = Table(title="Saved Subjects")
    table.add_column("#", justify="right")
    table.add_column("Subject", style="cyan")
    table.add_column("Questions", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Latest", justify="right")
    for i, subject in enumerate(controller.subjects, 1):
        stats = get_subject_stats(subject)
        table.add_row(
            str(i),
            subject.name,
            str(stats["cached_questions"]) if subject.cached_questions else "-",
            str(stats["attempts"]),
            f"{stats['latest']}%" if stats["attempts"] else "-",
        )
    console.print(table)


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("start", "Quiz a saved subject"),
        ("new", "Paste study material"),
        ("import", "Load study material from a file"),
        ("details", "Learning progress of a subject"),
        ("delete", "Delete a subject"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def pick_subject(controller: QuizController) -> str | None:
    if not controller.subjects:
        console.print("[yellow]No subjects saved yet.[/yellow]")
        return None
    show_subjects(controller)
    choices = [str(i) for i in range(1, len(controller.subjects) + 1)]
    index = int(Prompt.ask("Subject number", choices=choices))
    return controller.subjects[index - 1].id


def show_question(view) -> None:
    session = view.session
    q: Question = session.current_question
    console.print(
        f"\n[bold cyan]Question {session.current_index + 1} / {session.total_questions}[/bold cyan]"
    )
    console.print(f"[bold]{q.question}[/bold]")
    if q.is_multi_answer:
        console.print("[dim](Multiple answers may be correct)[/dim]")
    for i, option in enumerate(q.options, 1):
        console.print(f"  [cyan]{i})[/cyan] {option}")


def show_answer_feedback(result) -> None:
    q = result.question
    if result.is_correct:
        console.print("[green]Correct![/green]")
    else:
        correct = ", ".join(o for o in q.options if o in q.answer)
        console.print(f"[red]Incorrect.[/red] Answer: [green]{correct}[/green]")
    if q.explanation:
        console.print(f"[dim]{q.explanation}[/dim]")


def run_quiz(controller: QuizController) -> None:
    """Drive the active session until it reaches the results screen."""
    view = controller.view()
    while view.state is QuizState.IN_PROGRESS:
        show_question(view)
        options = view.session.current_question.options
        while True:
            raw = session_prompt("\nYour answer (e.g. 1 or 1,3)")
            try:
                view = controller.submit_answer(parse_selection(raw, options))
                break
            except QuizMasterError as e:
                console.print(f"[red]{e}[/red]")
        result = view.last_result
        show_answer_feedback(result)
        if result.auto_advance:
            view = controller.run_pending_timers(block=True)
        else:
            session_prompt("[dim]Press Enter for the next question[/dim]", default="")
            view = controller.advance()


def offer_save(controller: QuizController) -> None:
    if not controller.view().can_save_subject:
        return
    name = Prompt.ask("Save this material as a subject? Name (blank to skip)", default="")
    if name.strip():
        controller.save_subject(name)
        console.print(f"[green]Saved subject '{name.strip()}'.[/green]")


def show_results(view) -> None:
    session = view.session
    pct = round(session.percentage)
    color = get_feedback_color(pct)
    label = "Review finished" if session.is_review else get_feedback_label(pct)
    console.print(Panel(
        f"[bold]{session.score} / {session.total_questions}[/bold] ({pct}%)",
        title=f"[{color}]{label}[/{color}]", border_style=color,
    ))


def results_loop(controller: QuizController) -> None:
    while controller.state is QuizState.RESULTS:
        view = controller.view()
        show_results(view)
        choices = ["restart", "new"]
        if view.session.has_next_batch:
            choices.insert(0, "next")
        if view.session.has_wrong_answers:
            choices.insert(0, "review")
        if view.can_save_subject:
            choices.append("save")
        choice = Prompt.ask("What next?", choices=choices, default=choices[0])
        try:
            if choice == "next":
                controller.next_batch()
            elif choice == "review":
                controller.review()
            elif choice == "restart":
                controller.restart()
            elif choice == "save":
                offer_save(controller)
                continue
            else:
                controller.start_over()
                return
            run_quiz(controller)
        except SessionExitRequested:
            controller.start_over()
            return


def play(controller: QuizController, view) -> None:
    if view.error:
        console.print(f"[red]{view.error}[/red]")
        return
    try:
        offer_save(controller)
        run_quiz(controller)
        results_loop(controller)
    except SessionExitRequested:
        controller.start_over()
        console.print("[dim]Quiz abandoned.[/dim]")


def read_pasted_text() -> str:
    console.print(f"Paste your study material. Finish with a line containing only [bold]{PASTE_TERMINATOR}[/bold].")
    lines = []
    while True:
        line = console.input()
        if line.strip() == PASTE_TERMINATOR:
            break
        lines.append(line)
    return "\n".join(lines)


def generate_from_text(controller: QuizController, text: str) -> None:
    with console.status("Building your quiz..."):
        view = controller.create_subject(text)
    play(controller, view)


def cmd_start(controller: QuizController):
    subject_id = pick_subject(controller)
    if subject_id is None:
        return
    with console.status("Preparing your quiz..."):
        view = controller.select_subject(subject_id)
    play(controller, view)


def cmd_new(controller: QuizController):
    controller.open_content_intake()
    generate_from_text(controller, read_pasted_text())


def cmd_import(controller: QuizController):
    controller.open_content_intake()
    text = read_study_text(Prompt.ask("File path"))
    console.print(f"[dim]Read {len(text)} characters.[/dim]")
    generate_from_text(controller, text)


def cmd_details(controller: QuizController):
    subject_id = pick_subject(controller)
    if subject_id is None:
        return
    subject = next(s for s in controller.subjects if s.id == subject_id)
    series = aggregate_progress(subject.history)
    console.print(f"\n[bold]Learning Progress: {subject.name}[/bold]")
    if series.status == NO_HISTORY:
        console.print("[dim]No quiz history yet. Complete a quiz to see your progress![/dim]")
        return
    if series.status == INSUFFICIENT_HISTORY:
        console.print("[dim]Complete at least two quizzes to see a progress chart.[/dim]")
        return
    table = Table()
    table.add_column("Date")
    table.add_column("Score", justify="right")
    table.add_column("Progress")
    for point in series.points:
        a = point.attempt
        filled = int(point.y / 5)
        color = get_feedback_color(point.y)
        table.add_row(
            a.date.strftime("%b %d %H:%M"),
            f"{a.score}/{a.total_questions} ({point.y:.0f}%)",
            f"[{color}]{'█' * filled}{'░' * (20 - filled)}[/{color}]",
        )
    console.print(table)
    stats = get_subject_stats(subject)
    console.print(f"  Best: [bold]{stats['best']}%[/bold]  |  Average: [bold]{stats['average']}%[/bold]")


def cmd_delete(controller: QuizController):
    subject_id = pick_subject(controller)
    if subject_id is None:
        return
    if Confirm.ask("Are you sure you want to delete this subject?", default=False):
        controller.delete_subject(subject_id)
        console.print("[green]Deleted.[/green]")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="quiz-master", description=__doc__)
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--db", help="Path to the subject database")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    config = load_config(args.config)
    if args.db:
        config.db_path = args.db
    controller = QuizController.from_config(config, build_generator(config))

    show_welcome()
    commands = {
        "start": cmd_start,
        "new": cmd_new,
        "import": cmd_import,
        "details": cmd_details,
        "delete": cmd_delete,
    }
    while True:
        show_subjects(controller)
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="start").strip().lower()
        try:
            if choice in ("quit", "exit", "q"):
                console.print("[dim]Happy studying![/dim]")
                break
            elif choice in commands:
                commands[choice](controller)
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            controller.start_over()
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except QuizMasterError as e:
            controller.start_over()
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
