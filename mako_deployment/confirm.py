from collections import OrderedDict

from mako_deployment.planner import StagePlan


def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        exit(-1)


def _print_plan(plan: StagePlan, records: OrderedDict) -> None:
    print(f"\nStage {plan.stage} will process {len(plan)} contract(s):")
    for position, entry in enumerate(plan, start=1):
        record = records.get(entry.name)
        status = f"deployed at {record.address}" if record else "new"
        print(f"\t{position}. {entry.name} ({status})")
        if entry.dependencies:
            print(f"\t   depends on {', '.join(entry.dependencies)}")
        for step in entry.steps:
            print(f"\t   step {step.index}: {step.describe()}")


def _confirm_plan(plan: StagePlan, records: OrderedDict) -> None:
    """Shows the plan of a stage and asks the user to confirm it."""
    _print_plan(plan, records)
    _continue()
