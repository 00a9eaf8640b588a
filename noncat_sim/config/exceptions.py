"""Exceptions raised while checking a simulation configuration."""


class ConfigurationError(Exception):
    """Raised when settings are individually valid but contradict each other.

    Field-level problems (a negative trial count, a CV below zero) are
    rejected by pydantic when the models are built. This error covers the
    cross-field checks of :meth:`Config.check_consistency`, such as a line's
    attritional threshold at or beyond the claim-size grid, which would
    leave no grid point to split large from attritional claims.

    Attributes:
        issues: One message per problem, naming the line or grid setting.
    """

    def __init__(self, issues: list[str]) -> None:
        self.issues = issues
        bullet_list = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(
            f"Inconsistent simulation configuration "
            f"({len(issues)} {'issue' if len(issues) == 1 else 'issues'}):\n{bullet_list}"
        )
