"""
Bracket engine exceptions.

Services raise these; the HTTP layer translates them into status codes
(NotFoundError -> 404, ValidationError -> 422).
"""


class BracketError(Exception):
    """Base exception for bracket engine errors"""
    pass


class ValidationError(BracketError):
    """Input or state does not allow the requested operation"""
    pass


class NotFoundError(BracketError):
    """Referenced stage, team, matchup or match does not exist"""
    pass
