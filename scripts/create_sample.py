#!/usr/bin/env python
"""Seed a BlockNotes database with sample labels and notes.

Usage:
    python scripts/create_sample.py
    python scripts/create_sample.py --database-path /tmp/sample.db --reset
"""

import argparse
import datetime
from pathlib import Path

from blocknotes.config import config
from blocknotes.models.schema import ChecklistBlock, Reminder, TextBlock, ToggleBlock, utc_now
from blocknotes.services.notes_service import NotesService

SAMPLE_LABELS = ["Work", "Personal", "Ideas", "Shopping", "Recipes"]


def _text(content, order=0):
    return TextBlock(content=content, order=order)


def _items(*entries):
    return [
        ChecklistBlock(content=content, checked=checked, order=i)
        for i, (content, checked) in enumerate(entries)
    ]


def seed(service: NotesService) -> int:
    """Create the sample data; return the number of notes created."""
    labels = {
        name: service.labels.get_by_name(name) or service.labels.create(name)
        for name in SAMPLE_LABELS
    }

    def create(title, blocks, label_names=(), **fields):
        return service.notes.create(
            title=title,
            blocks=blocks,
            labels=[labels[name].id for name in label_names],
            **fields,
        )

    notes = [
        create(
            "Project Deadline",
            [
                _text("Remember to submit the quarterly report by Friday. Include:"),
                *[
                    b.model_copy(update={"order": b.order + 1})
                    for b in _items(
                        ("Financial summary", False),
                        ("Team updates", False),
                        ("Next quarter goals", False),
                    )
                ],
            ],
            ["Work"],
            is_pinned=True,
            color="yellow",
            reminder=Reminder(date_time=utc_now() + datetime.timedelta(days=2)),
        ),
        create(
            "Meeting Notes",
            [
                _text("Key takeaways from today's standup:"),
                ToggleBlock(
                    content="Action items",
                    order=1,
                    children=[
                        _text("Sprint planning next week", 0),
                        _text("New feature launch in 2 weeks", 1),
                        _text("Team outing scheduled for month end", 2),
                    ],
                ),
            ],
            ["Work"],
            is_pinned=True,
            color="blue",
        ),
        create(
            "Book Recommendations",
            _items(
                ("Atomic Habits by James Clear", True),
                ("Deep Work by Cal Newport", False),
                ("The Psychology of Money by Morgan Housel", False),
            ),
            ["Personal"],
            color="purple",
        ),
        create(
            "Shopping List",
            _items(("Milk", False), ("Eggs", True), ("Bread", False), ("Coffee", False)),
            ["Shopping"],
            color="green",
        ),
        create(
            "App Ideas",
            [_text("A habit tracker that nudges you with one question a day.")],
            ["Ideas"],
            color="teal",
        ),
        create(
            "Pancakes",
            [
                _text("Serves 4."),
                ToggleBlock(
                    content="Ingredients",
                    order=1,
                    is_expanded=False,
                    children=_items(("2 cups flour", False), ("2 eggs", False), ("1.5 cups milk", False)),
                ),
            ],
            ["Recipes"],
            color="orange",
        ),
        create("Old Travel Plans", [_text("Lisbon in spring")], ["Personal"], is_archived=True),
    ]
    return len(notes)


def main():
    parser = argparse.ArgumentParser(description="Seed BlockNotes with sample data")
    parser.add_argument(
        "--database-path", default=None,
        help="SQLite database file (defaults to the configured path)",
    )
    parser.add_argument(
        "--reset", action="store_true", help="Delete existing notes and labels first",
    )
    args = parser.parse_args()

    if args.database_path:
        config.database_path = Path(args.database_path)

    service = NotesService()
    try:
        if args.reset:
            for label in service.labels.get_all():
                service.labels.delete(label.id)
            for note in service.notes.get_all():
                service.notes.delete(note.id)
        count = seed(service)
        print(f"Seeded {count} notes and {len(SAMPLE_LABELS)} labels into {config.get_db_url()}")
    finally:
        service.close()


if __name__ == "__main__":
    main()
