"""
Module for printing builds, DPR results and level progressions in a
formatted way.
"""

from rich.padding import Padding
from rich.table import Table

from dpr_engine.character.build import Build
from dpr_engine.character.build_stats import BuildStats
from dpr_engine.core.utils import cprint, crule

from .dpr import DPRResult
from .level_analysis import LevelProgression


def confidence_to_string(confidence: float) -> str:
    """
    Formats a decision confidence with a color matching its strength.

    Args:
        confidence (float): The confidence, between 0 and 1.

    Returns:
        str: The colored percentage.

    """
    if confidence >= 0.9:
        color = "green"
    elif confidence >= 0.7:
        color = "yellow"
    else:
        color = "red"
    return f"[{color}]{confidence:.0%}[/]"


def print_build_sheet(build: Build, padding: int = 2) -> None:
    """Prints the headline numbers of a build."""
    stats = BuildStats(build)
    crule(f"[bold]{build.name}[/]")
    classes = " / ".join(
        f"{entry.class_name.title()} {entry.level}" for entry in build.levels
    )
    cprint(Padding(f"[blue]{classes}[/]", (0, padding)))
    for key, value in stats.summary().items():
        if value is None:
            continue
        label = key.replace("_", " ").capitalize()
        cprint(Padding(f"{label}: [bold]{value}[/]", (0, padding)))


def dpr_table(result: DPRResult) -> Table:
    """
    Builds the table of a DPR result: breakdown, rounds and roll states.

    Args:
        result (DPRResult): The result to display.

    Returns:
        Table: The formatted table.

    """
    table = Table(title="Damage per round", show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("DPR", justify="right")

    breakdown = result.dpr.breakdown
    table.add_row("Weapon attacks", f"{breakdown.weapon_damage:.2f}")
    table.add_row("Once per turn", f"{breakdown.once_per_turn:.2f}")
    table.add_row("Spells", f"{breakdown.spell_damage:.2f}")
    table.add_row("Other sources", f"{breakdown.other_sources:.2f}")
    table.add_row("[bold]Total[/]", f"[bold]{result.dpr.total:.2f}[/]")

    for index, value in enumerate(result.dpr.by_round, start=1):
        table.add_row(f"Round {index}", f"{value:.2f}", style="dim")
    for state, value in result.dpr.conditions.items():
        hit = result.hit_chances.get(state, 0.0)
        table.add_row(f"Weapons with {state} ({hit:.0%} to hit)", f"{value:.2f}")
    return table


def print_dpr_sheet(result: DPRResult, padding: int = 2) -> None:
    """Prints a DPR result with the decisions behind it."""
    cprint(dpr_table(result))
    cprint(
        Padding(
            f"[italic]{result.advantage_reasoning}[/] ({result.advantage_state.value})",
            (0, padding),
        )
    )

    if result.power_attack is not None:
        power = result.power_attack
        verdict = "[green]used[/]" if power.used else "[red]not used[/]"
        cprint(
            Padding(
                f"{power.feature}: {verdict}, {power.normal_dpr:.2f} vs "
                f"{power.power_attack_dpr:.2f} DPR, "
                f"break-even AC {power.break_even_ac}",
                (0, padding),
            )
        )

    if result.once_per_turn_analysis is not None:
        cprint(Padding(result.once_per_turn_analysis.reasoning, (0, padding)))

    if result.active_spells:
        spells = ", ".join(result.active_spells)
        cprint(Padding(f"Active spells: [blue]{spells}[/]", (0, padding)))

    if result.decisions:
        crule("Decisions")
        for decision in result.decisions:
            confidence = confidence_to_string(decision.confidence)
            cprint(
                Padding(
                    f"[bold]{decision.action}[/] {confidence}"
                    f" - [italic]{decision.reasoning}[/]",
                    (0, padding),
                )
            )


def progression_table(progression: LevelProgression) -> Table:
    """Builds the level-by-level table of a progression, key levels highlighted."""
    table = Table(
        title=f"Level progression of {progression.build_name}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Level", justify="right")
    table.add_column("Classes")
    table.add_column("Attacks", justify="right")
    table.add_column("To hit", justify="right")
    table.add_column("DPR", justify="right")
    table.add_column("Gain", justify="right")
    table.add_column("Features")
    for snapshot in progression.levels:
        classes = ", ".join(
            f"{name.title()} {level}" for name, level in snapshot.class_levels.items()
        )
        table.add_row(
            str(snapshot.level),
            classes,
            str(snapshot.number_of_attacks),
            f"+{snapshot.attack_bonus:g}",
            f"{snapshot.dpr:.2f}",
            f"{snapshot.dpr_gain:+.2f}",
            ", ".join(snapshot.new_features),
            style="bold yellow" if snapshot.key_level else None,
        )
    return table


def print_level_progression_sheet(progression: LevelProgression) -> None:
    cprint(progression_table(progression))
    if progression.key_levels:
        levels = ", ".join(str(level) for level in progression.key_levels)
        cprint(Padding(f"Key levels: [bold yellow]{levels}[/]", (0, 2)))
