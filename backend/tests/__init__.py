# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from teams_bracket.models.match import Match  # noqa: F401
from teams_bracket.models.matchup import Matchup  # noqa: F401
from teams_bracket.models.stage import Stage  # noqa: F401
from teams_bracket.models.team import Team  # noqa: F401
