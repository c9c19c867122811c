class BudgetEngineError(ValueError):
    """Base class for data-integrity errors raised by the budget engine."""


class InvalidBudgetTypeError(BudgetEngineError):
    def __init__(self, budget_type: object) -> None:
        super().__init__(f"Unrecognized budget type: {budget_type!r}")
        self.budget_type = budget_type


class PriorPeriodNotClosedError(BudgetEngineError):
    def __init__(self, budget_id: int, prior_start, period_start) -> None:
        super().__init__(
            f"Budget {budget_id}: period starting {prior_start} must be closed "
            f"before settling the period starting {period_start}"
        )
        self.budget_id = budget_id
        self.prior_start = prior_start
        self.period_start = period_start


class InconsistentCategoryReferenceError(BudgetEngineError):
    def __init__(self, budget_category_id: int, budget_id: int) -> None:
        super().__init__(
            f"Budget category {budget_category_id} does not belong to budget {budget_id}"
        )
        self.budget_category_id = budget_category_id
        self.budget_id = budget_id


class NegativeAllocationError(BudgetEngineError):
    def __init__(self, budget_category_id: int, amount) -> None:
        super().__init__(
            f"Budget category {budget_category_id} has a negative allocation: {amount}"
        )
        self.budget_category_id = budget_category_id
        self.amount = amount


class PeriodNotFoundError(BudgetEngineError):
    pass


class InvalidPeriodStateError(BudgetEngineError):
    pass


class StrategyChangeNotAllowedError(BudgetEngineError):
    pass
