"""
Console Harness for TraversalEngine

Walk a questionnaire from the terminal:
    number  choose the answer/option with that number
    b       back one step
    r       restart
    q       quit

The report is printed (and saved) once an outcome is reached.
"""

import logging
import sys

from clinical_tree.config import get_settings
from clinical_tree.core.traversal_engine import TraversalEngine
from clinical_tree.persistence import ReportStore
from clinical_tree.results import IllegalOperation, SessionStatus
from clinical_tree.utils.patient_intake import skipped_patient, validate_patient_data
from clinical_tree.utils.tree_loader import QuestionnaireCatalog

logger = logging.getLogger(__name__)


def print_separator(char="=", length=60, print_fn=print):
    """Print a separator line"""
    print_fn(char * length)


def numbered_choices(node):
    """
    Choices offered on a node, numbered from 1.

    Returns:
        list of (label, index, from_options, selectable); answers first,
        then options (informational options are shown but not selectable)
    """
    choices = [(answer.text, i, False, True) for i, answer in enumerate(node.answers)]
    choices += [(option.text, i, True, option.selectable) for i, option in enumerate(node.options)]
    return choices


def print_view(view, print_fn=print):
    """Print the current question and its numbered choices"""
    node = view.node
    print_fn(f"\n[Step {view.step_number}] {node.question or 'Choose an option'}")
    if node.source_reference:
        print_fn(f"  Source: {node.source_reference}")
    if node.clinical_info is not None and node.clinical_info.flatten():
        print_fn(f"  {node.clinical_info.flatten()}")

    number = 0
    for label, _, _, selectable in numbered_choices(node):
        if selectable:
            number += 1
            print_fn(f"  {number}. {label}")
        else:
            print_fn(f"     ({label})")


def run_console(engine, input_fn=input, print_fn=print, store=None):
    """
    Drive one consultation interactively.

    Args:
        engine: TraversalEngine to drive
        input_fn: Line source (input() by default)
        print_fn: Output sink (print() by default)
        store: ReportStore to save the report into (optional)

    Returns:
        SessionStatus: Status when the loop ended
    """
    while True:
        view = engine.current_view()

        if view.status is not SessionStatus.ACTIVE:
            print_separator(print_fn=print_fn)
            print_fn("CONSULTATION COMPLETE" if view.status is SessionStatus.TERMINAL else "CONSULTATION ENDED WITH ERROR")
            print_separator(print_fn=print_fn)
            report = engine.report_text()
            print_fn(report)
            if store is not None:
                path = store.save(report, engine.title)
                print_fn(f"Report saved: {path.name}")
            return view.status

        print_view(view, print_fn=print_fn)
        selectable = [c for c in numbered_choices(view.node) if c[3]]
        if not selectable:
            print_fn("No choices on this step. Enter 'b' to go back, 'r' to restart or 'q' to quit.")

        try:
            command = input_fn("> ").strip().lower()
        except EOFError:
            command = "q"

        if command == "q":
            print_fn("Consultation ended by user")
            return engine.status

        if command == "b":
            result = engine.back()
        elif command == "r":
            result = engine.restart()
        elif command.isdigit() and 1 <= int(command) <= len(selectable):
            _, index, from_options, _ = selectable[int(command) - 1]
            result = engine.choose_index(index, from_options=from_options)
        elif not selectable:
            print_fn("Only 'b', 'r' or 'q' are possible here.")
            continue
        else:
            print_fn(f"Please enter a number between 1 and {len(selectable)}, 'b', 'r' or 'q'.")
            continue

        if isinstance(result, IllegalOperation):
            print_fn(f"Not possible: {result.reason}")


def prompt_patient(input_fn=input, print_fn=print):
    """Ask for patient data until valid, or return the skipped context on 's'"""
    while True:
        answer = input_fn("Enter patient data? (y/s to skip): ").strip().lower()
        if answer == "s":
            return skipped_patient()

        data = {
            'gender': input_fn("Gender (male/female): ").strip().lower(),
            'age': input_fn("Age (years): ").strip(),
            'weight': input_fn("Weight (kg): ").strip(),
            'chronic_diseases': input_fn("Chronic diseases: ").strip(),
        }
        patient, errors = validate_patient_data(data)
        if patient is not None:
            return patient
        for error in errors:
            print_fn(f"  - {error}")


def main():
    """Run console consultation"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print_separator()
    print("CLINICAL DECISION TREE NAVIGATOR - CONSOLE")
    print_separator()

    try:
        catalog = QuestionnaireCatalog(settings.catalog_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"\nFailed to load questionnaires: {e}")
        return 1

    entries = catalog.list_entries()
    for number, entry in enumerate(entries, 1):
        print(f"  {number}. {entry.title} - {entry.description}")

    choice = input("Questionnaire number: ").strip()
    if not choice.isdigit() or not 1 <= int(choice) <= len(entries):
        print("No such questionnaire")
        return 1
    entry = entries[int(choice) - 1]

    try:
        document = catalog.load_document(entry.id)
    except (FileNotFoundError, ValueError) as e:
        print(f"\nFailed to load {entry.title}: {e}")
        return 1

    patient = prompt_patient()
    engine = TraversalEngine(document, patient, title=entry.title)

    try:
        run_console(engine, store=ReportStore(settings.reports_dir))
    except KeyboardInterrupt:
        print("\n\nConsultation interrupted by user (Ctrl+C)")

    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
