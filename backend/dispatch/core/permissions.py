"""
RBAC: роль × ресурс.
Ресурсы: действия над liberações, agendamentos, carregamentos и estoque.
Роли приходят из внешнего сервиса авторизации и передаются в каждую операцию явно (Actor).
"""
import enum
from typing import Iterable, List

from pydantic import BaseModel, Field


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    LOGISTICS = "logistica"
    WAREHOUSE = "armazem"
    CLIENT = "cliente"
    COMMERCIAL = "comercial"


class Resource(str, enum.Enum):
    """Ресурсы для проверки доступа."""
    RELEASE_CREATE = "RELEASE_CREATE"        # выдача liberação клиенту
    RELEASE_CANCEL = "RELEASE_CANCEL"        # отмена liberação (повышенные права)
    SCHEDULE_CREATE = "SCHEDULE_CREATE"      # запись на вывоз
    SCHEDULE_MANAGE = "SCHEDULE_MANAGE"      # правка/отмена чужих записей
    LOADING_OPERATE = "LOADING_OPERATE"      # работа на погрузке: статусы, фото, НФ
    STOCK_MANAGE = "STOCK_MANAGE"            # пополнение и корректировка остатков
    RECONCILIATION = "RECONCILIATION"        # повторная сверка после сбоя
    CATALOG = "CATALOG"                      # справочники продуктов и складов


RESOURCE_ROLES = {
    Resource.RELEASE_CREATE: [UserRole.ADMIN, UserRole.LOGISTICS, UserRole.COMMERCIAL],
    Resource.RELEASE_CANCEL: [UserRole.ADMIN, UserRole.LOGISTICS],
    Resource.SCHEDULE_CREATE: [UserRole.ADMIN, UserRole.LOGISTICS, UserRole.CLIENT],
    Resource.SCHEDULE_MANAGE: [UserRole.ADMIN, UserRole.LOGISTICS],
    Resource.LOADING_OPERATE: [UserRole.ADMIN, UserRole.WAREHOUSE, UserRole.LOGISTICS],
    Resource.STOCK_MANAGE: [UserRole.ADMIN, UserRole.WAREHOUSE, UserRole.LOGISTICS],
    Resource.RECONCILIATION: [UserRole.ADMIN, UserRole.LOGISTICS],
    Resource.CATALOG: [UserRole.ADMIN],
}


class Actor(BaseModel):
    """Действующий пользователь: id из сервиса авторизации и его роли."""
    id: str
    name: str = ""
    roles: List[str] = Field(default_factory=list)

    def has_role(self, role: UserRole) -> bool:
        return role.value in self.roles


def _parse_roles(roles: Iterable[str]) -> List[UserRole]:
    out = []
    for role in roles:
        try:
            out.append(UserRole(role))
        except ValueError:
            continue
    return out


def can_access_resource(roles: Iterable[str], resource: Resource) -> bool:
    """Проверка: есть ли хотя бы у одной из ролей доступ к ресурсу."""
    allowed = RESOURCE_ROLES.get(resource, [])
    return any(r in allowed for r in _parse_roles(roles))


def can(actor: Actor, resource: Resource) -> bool:
    return can_access_resource(actor.roles, resource)
