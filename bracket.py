"""Match graph generation for league and knockout tournaments.

Everything here is pure: the builders return transient ``Match`` objects with
ids and links already assigned and never touch the database session.
"""

import random

from errors import DuplicateParticipantError, InsufficientParticipantsError, ValidationError
from models import (
    FORMAT_KNOCKOUT,
    FORMAT_LEAGUE,
    MATCH_SCHEDULED,
    SEEDING_RANDOM_DRAW,
    Match,
    new_match_id,
)

MIN_PARTICIPANTS = 2
LEAGUE_STAGE = 'League'


def stage_name(total_rounds: int, round_number: int) -> str:
    mapping = {
        6: ['Round of 64', 'Round of 32', 'Round of 16', 'Quarterfinal', 'Semifinal', 'Final'],
        5: ['Round of 32', 'Round of 16', 'Quarterfinal', 'Semifinal', 'Final'],
        4: ['Round of 16', 'Quarterfinal', 'Semifinal', 'Final'],
        3: ['Quarterfinal', 'Semifinal', 'Final'],
        2: ['Semifinal', 'Final'],
        1: ['Final'],
    }
    names = mapping.get(total_rounds)
    if not names:
        names = [f'Round {i + 1}' for i in range(total_rounds)]
    try:
        return names[round_number - 1]
    except IndexError:
        return f'Round {round_number}'


def bracket_size(participant_count: int) -> int:
    """Smallest power of two holding every participant."""
    return 1 << (participant_count - 1).bit_length()


def count_rounds(participant_count: int) -> int:
    return bracket_size(participant_count).bit_length() - 1


def slot_code(round_number: int, round_position: int) -> str:
    return f"R{round_number}M{round_position + 1}"


def draw_rng(tournament) -> random.Random:
    """Shuffle source for a random draw, reproducible when a seed is stored."""
    return random.Random(tournament.draw_seed)


def validate_participants(participant_ids) -> list[str]:
    participants = list(participant_ids or [])
    if len(participants) < MIN_PARTICIPANTS:
        raise InsufficientParticipantsError(
            f'At least {MIN_PARTICIPANTS} participants are required, got {len(participants)}'
        )
    if any(not isinstance(pid, str) or not pid.strip() for pid in participants):
        raise ValidationError('Participant identifiers must be non-empty strings')

    seen: set[str] = set()
    duplicates: list[str] = []
    for pid in participants:
        if pid in seen and pid not in duplicates:
            duplicates.append(pid)
        seen.add(pid)
    if duplicates:
        raise DuplicateParticipantError(f"Duplicate participants: {', '.join(duplicates)}")
    return participants


def build_matches(tournament, participant_ids, rng: random.Random | None = None) -> list[Match]:
    """Derive the complete initial match set for a tournament."""
    participants = validate_participants(participant_ids)

    if tournament.format == FORMAT_LEAGUE:
        return build_round_robin(tournament.id, participants)
    if tournament.format == FORMAT_KNOCKOUT:
        if tournament.seeding == SEEDING_RANDOM_DRAW and rng is None:
            rng = draw_rng(tournament)
        return build_single_elimination(tournament.id, participants, tournament.seeding, rng)
    raise ValidationError(f'Unknown tournament format: {tournament.format}')


def build_round_robin(tournament_id: int, participants: list[str]) -> list[Match]:
    matches: list[Match] = []
    for i in range(len(participants)):
        for j in range(i + 1, len(participants)):
            matches.append(
                Match(
                    id=new_match_id(),
                    tournament_id=tournament_id,
                    home_team_id=participants[i],
                    away_team_id=participants[j],
                    home_is_bye=False,
                    away_is_bye=False,
                    round_number=1,
                    round_position=len(matches),
                    stage=LEAGUE_STAGE,
                    status=MATCH_SCHEDULED,
                )
            )
    return matches


def seed_slots(participants: list[str], seeding: str, rng: random.Random | None = None) -> list[str | None]:
    """Lay participants and byes out over the bracket's first-round slots.

    Byes are interleaved so each one faces a real participant: the leading
    participants pair off, every trailing participant is followed by a bye.
    """
    ordered = list(participants)
    if seeding == SEEDING_RANDOM_DRAW:
        (rng or random.Random()).shuffle(ordered)

    byes = bracket_size(len(ordered)) - len(ordered)
    paired = len(ordered) - byes

    slots: list[str | None] = ordered[:paired]
    for pid in ordered[paired:]:
        slots.extend([pid, None])
    return slots


def new_bracket_match(tournament_id: int, round_number: int, round_position: int, total_rounds: int) -> Match:
    return Match(
        id=new_match_id(),
        tournament_id=tournament_id,
        home_is_bye=False,
        away_is_bye=False,
        round_number=round_number,
        round_position=round_position,
        bracket_slot=slot_code(round_number, round_position),
        stage=stage_name(total_rounds, round_number),
        status=MATCH_SCHEDULED,
    )


def attach_child(parent: Match, child: Match) -> str:
    """Link ``child`` under ``parent`` on the side its position dictates."""
    side = 'home' if child.round_position % 2 == 0 else 'away'
    if side == 'home':
        parent.left_child_id = child.id
    else:
        parent.right_child_id = child.id
    child.parent_match_id = parent.id
    return side


def build_single_elimination(
    tournament_id: int,
    participants: list[str],
    seeding: str,
    rng: random.Random | None = None,
) -> list[Match]:
    slots = seed_slots(participants, seeding, rng)
    total_rounds = count_rounds(len(participants))

    first_round: list[Match] = []
    for position in range(len(slots) // 2):
        home, away = slots[2 * position], slots[2 * position + 1]
        match = new_bracket_match(tournament_id, 1, position, total_rounds)
        match.home_team_id = home
        match.away_team_id = away
        match.away_is_bye = away is None
        first_round.append(match)

    matches = list(first_round)
    if seeding == SEEDING_RANDOM_DRAW:
        # later rounds are materialised as the draw progresses
        return matches

    previous = first_round
    for round_number in range(2, total_rounds + 1):
        current: list[Match] = []
        for index in range(0, len(previous), 2):
            parent = new_bracket_match(tournament_id, round_number, len(current), total_rounds)
            attach_child(parent, previous[index])
            if index + 1 < len(previous):
                attach_child(parent, previous[index + 1])
            current.append(parent)
        matches.extend(current)
        previous = current
    return matches
