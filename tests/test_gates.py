import pytest

from auth import authorize, authorize_owner_or_admin
from errors import Forbidden, Unauthorized
from product_routes import apply_stock_operation
from schemas import Role


def test_authorize_without_account_is_401():
    with pytest.raises(Unauthorized) as exc:
        authorize(None, [Role.ADMIN])
    assert exc.value.status_code == 401


def test_authorize_wrong_role_is_403():
    with pytest.raises(Forbidden) as exc:
        authorize({"_id": "u1", "role": "user"}, [Role.ADMIN])
    assert exc.value.detail == "Access denied. Required role: admin. Your role: user"


def test_authorize_unknown_role_never_matches():
    with pytest.raises(Forbidden):
        authorize({"_id": "u1", "role": "Admin"}, [Role.ADMIN, Role.USER])


def test_authorize_allowed_role():
    user = {"_id": "u1", "role": "admin"}
    assert authorize(user, [Role.ADMIN]) is user


def test_owner_or_admin():
    authorize_owner_or_admin({"_id": "u1", "role": "user"}, "u1", "view your own profile")
    authorize_owner_or_admin({"_id": "a1", "role": "admin"}, "u1", "view your own profile")
    with pytest.raises(Forbidden):
        authorize_owner_or_admin({"_id": "u2", "role": "user"}, "u1", "view your own profile")


def test_stock_operations():
    assert apply_stock_operation(3, 7, "set") == 7
    assert apply_stock_operation(3, 7, "add") == 10
    assert apply_stock_operation(3, 2, "subtract") == 1
    assert apply_stock_operation(3, 10, "subtract") == 0
