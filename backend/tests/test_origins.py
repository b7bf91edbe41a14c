"""Origin sum type and legacy label parsing."""

import pytest

from teams_bracket.services.origins import (
    ByeSlot,
    GroupOrigin,
    MatchupWinner,
    origin_from_dict,
    origin_label,
    parse_origin_label,
)


def test_labels():
    assert GroupOrigin(rank=1, group="A").label == "1º Grupo A"
    assert MatchupWinner(phase="QUARTER", slot=1).label == "Vencedor Quartas 1"
    assert MatchupWinner(phase="ROUND_OF_16", slot=8).label == "Vencedor Oitavas 8"
    assert MatchupWinner(phase="SEMI", slot=2).label == "Vencedor Semifinal 2"
    assert ByeSlot().label == "BYE"


def test_json_form_keeps_matchup_id():
    origin = MatchupWinner(phase="SEMI", slot=1, matchup_id=42)
    assert origin_from_dict(origin.to_dict()) == origin
    assert origin_label({"kind": "group", "rank": 2, "group": "C"}) == "2º Grupo C"
    assert origin_label(None) is None


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        origin_from_dict({"kind": "loser"})


@pytest.mark.parametrize(
    "label,expected",
    [
        ("1º Grupo A", GroupOrigin(rank=1, group="A")),
        ("2º Grupo H", GroupOrigin(rank=2, group="H")),
        ("BYE", ByeSlot()),
        (" BYE ", ByeSlot()),
    ],
)
def test_parse_recognized_labels(label, expected):
    assert parse_origin_label(label) == expected


@pytest.mark.parametrize(
    "label",
    [
        "Vencedor Quartas 1",
        "Vencedor Semifinal 2",
        "Vencedor Oitavas 3",
        "1º Grupo A (reserva)",
        "Grupo A",
        "1 Grupo A",
        "",
    ],
)
def test_winner_and_malformed_labels_are_not_group_origins(label):
    assert parse_origin_label(label) is None


def test_stored_legacy_labels_are_parsed():
    assert origin_from_dict("2º Grupo C") == GroupOrigin(rank=2, group="C")
    assert origin_from_dict("BYE") == ByeSlot()
    assert origin_from_dict("Vencedor Quartas 1") is None
    assert origin_label("1º Grupo A") == "1º Grupo A"
