from pydantic import BaseModel


class DashboardSummary(BaseModel):
    """Сводка для главной: продукты на складах, активные liberações, вывозы сегодня, завершённые погрузки."""
    products_in_stock: int
    active_releases: int
    schedules_today: int
    completed_loadings: int
    low_stock_balances: int
    pending_reconciliations: int
