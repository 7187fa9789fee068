"""Interactive CLI application."""
import logging
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from study_portal.auth import register_learner
from study_portal.config import DEFAULT_DB_PATH, DEFAULT_LEARNER, LOG_LEVEL, QUEUE_LIMIT
from study_portal.db import init_db
from study_portal.errors import PersistenceError, ReviewError
from study_portal.importer import import_deck
from study_portal.review import RESULT_LABELS, ReviewSession
from study_portal.store import CardStore, SQLiteCardStore

console = Console()

EXIT_WORDS = ("q", "quit", "menu")
RATING_CHOICES = [str(n) for n in range(6)] + list(RESULT_LABELS)


class SessionExitRequested(Exception):
    """The learner asked to leave the current session."""


def session_prompt(text: str, **kwargs) -> str:
    """Prompt.ask, except that 'q' or 'menu' ends the session."""
    answer = Prompt.ask(text, **kwargs)
    if answer is not None and answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def show_welcome(learner_name: str):
    console.print(Panel(
        f"[bold]Study Portal[/bold]\n[dim]Flashcard review for {learner_name}[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("review", "Review due flashcards"),
        ("decks", "List your decks"),
        ("add", "Add a flashcard"),
        ("import", "Import a deck from a file"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def _rate_current_card(session: ReviewSession) -> None:
    answer = session_prompt(
        "Rate yourself (0=forgot .. 5=easy, or again/hard/good/easy)",
        choices=RATING_CHOICES,
    )
    try:
        if answer.isdigit():
            session.submit(quality=int(answer))
        else:
            session.submit(label=answer)
    except PersistenceError as exc:
        console.print(f"[red]Could not save review: {exc}[/red]")
        while True:
            again = session_prompt("Retry?", choices=["y", "n"], default="y")
            if again != "y":
                session.skip()
                return
            try:
                session.retry()
                return
            except PersistenceError as retry_exc:
                console.print(f"[red]Still failing: {retry_exc}[/red]")
    except ReviewError as exc:
        console.print(f"[red]{exc}[/red]")
        session.skip()


def card_stats(card) -> str:
    """Scheduling state shown under each card."""
    return f"reps {card.repetition_count} | interval {card.interval_days}d | ease {card.ease:.2f}"


def run_flashcard_session(session: ReviewSession) -> int:
    """Drive *session* through its due queue. Returns the number of cards reviewed."""
    cards = session.start()
    if not cards:
        console.print("[yellow]No flashcards due right now![/yellow]")
        return 0
    total = len(cards)
    console.print(f"\n[bold]Flashcard Session[/bold] ({total} cards)\n")
    try:
        while not session.finished:
            card = session.current_card
            console.print(Panel(
                card.front, title=f"Card {session.index + 1}/{total}",
                subtitle=card_stats(card), border_style="cyan",
            ))
            session_prompt("[dim]Press Enter to reveal answer[/dim]", default="")
            console.print(Panel(session.reveal(), border_style="green"))
            _rate_current_card(session)
            console.print()
    except SessionExitRequested:
        session.abandon()
        raise
    show_session_summary(session)
    return len(session.reviewed)


def show_session_summary(session: ReviewSession) -> None:
    if not session.reviewed:
        return
    table = Table(title="Reviewed")
    table.add_column("Card")
    table.add_column("Streak", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Ease", justify="right")
    table.add_column("Next review")
    for card in session.reviewed:
        table.add_row(
            card.front[:40],
            str(card.repetition_count),
            f"{card.interval_days}d",
            f"{card.ease:.2f}",
            card.next_review_at.strftime("%Y-%m-%d %H:%M") if card.next_review_at else "",
        )
    console.print(table)


def _pick_deck(store: CardStore, learner_id: int, allow_all: bool = False):
    decks = store.list_decks(learner_id)
    if not decks:
        return None
    for d in decks:
        console.print(f"  [cyan]{d.id}[/cyan]) {d.title}")
    choices = [str(d.id) for d in decks]
    if allow_all:
        choices.append("all")
        picked = session_prompt("Deck", choices=choices, default="all")
        return None if picked == "all" else int(picked)
    return int(session_prompt("Deck", choices=choices))


def cmd_review(store: CardStore, learner_id: int):
    console.print("\n[bold]Flashcard Review[/bold]")
    deck_id = _pick_deck(store, learner_id, allow_all=True)
    session = ReviewSession(
        store, learner_id, deck_ids=None if deck_id is None else [deck_id], limit=QUEUE_LIMIT,
    )
    reviewed = run_flashcard_session(session)
    if reviewed:
        console.print(f"[green]Reviewed {reviewed} card(s).[/green]")


def cmd_decks(store: CardStore, learner_id: int):
    decks = store.list_decks(learner_id)
    if not decks:
        console.print("[yellow]No decks yet. Use 'add' or 'import' to create one.[/yellow]")
        return
    table = Table(title="Your Decks")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Cards", justify="right")
    table.add_column("Due", justify="right")
    for d in decks:
        table.add_row(
            str(d.id),
            d.title,
            str(len(store.get_due_cards([d.id], due=False))),
            str(len(store.get_due_cards([d.id]))),
        )
    console.print(table)


def cmd_add(store: CardStore, learner_id: int):
    deck_id = _pick_deck(store, learner_id)
    if deck_id is None:
        title = session_prompt("New deck title")
        deck_id = store.create_deck(learner_id, title).id
    front = session_prompt("Front")
    back = session_prompt("Back")
    card = store.add_card(deck_id, front, back)
    console.print(f"[green]Added card {card.id} to deck {deck_id}.[/green]")


def cmd_import(store: CardStore, learner_id: int):
    file_path = session_prompt("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    result = import_deck(store, learner_id, file_path)
    console.print(f"[green]Imported {result['cards']} cards into '{result['title']}' (deck {result['deck_id']})[/green]")


COMMANDS = {
    "review": cmd_review,
    "decks": cmd_decks,
    "add": cmd_add,
    "import": cmd_import,
}


def main():
    logging.basicConfig(
        level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    learner = register_learner(db_path, DEFAULT_LEARNER)
    store = SQLiteCardStore(db_path)

    show_welcome(learner.name)

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="review").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]See you next review![/dim]")
            break
        command = COMMANDS.get(choice)
        if command is None:
            console.print("[red]Unknown command. Try again.[/red]")
            continue
        try:
            command(store, learner.id)
        except SessionExitRequested:
            console.print("[dim]Back to menu.[/dim]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except ReviewError as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
