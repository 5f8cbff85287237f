import pytest

from account_service.rbac.roles import RoleSet


def test_parse_strips_and_dedupes():
    roles = RoleSet.parse(" ROLE_USER, ROLE_ADMIN ,ROLE_USER,,")
    assert roles.names == ("ROLE_USER", "ROLE_ADMIN")
    assert roles.serialize() == "ROLE_USER,ROLE_ADMIN"


@pytest.mark.parametrize("raw", [None, "", " , "])
def test_parse_empty(raw):
    roles = RoleSet.parse(raw)
    assert not roles
    assert len(roles) == 0


def test_names_are_interned():
    a = RoleSet.of(["".join(["ROLE_", "USER"])])
    b = RoleSet.of(["".join(["ROLE", "_USER"])])
    assert a.names[0] is b.names[0]


@pytest.mark.parametrize(
    "held, required, expected",
    [
        (["ADMIN"], "ADMIN", True),
        (["ROLE_ADMIN"], "ADMIN", True),
        (["ROLE_USER"], "ADMIN", False),
        (["SUPERADMIN"], "ADMIN", False),
        (["ROLE_SUPERADMIN"], "ADMIN", False),
        (["ADMINISTRATOR"], "ADMIN", False),
        ([], "ADMIN", False),
    ],
)
def test_has_matches_exact_or_prefixed_names_only(held, required, expected):
    assert RoleSet.of(held).has(required, "ROLE_") is expected


def test_has_without_prefix_is_exact():
    assert RoleSet.of(["ROLE_ADMIN"]).has("ADMIN") is False
    assert "ROLE_ADMIN" in RoleSet.of(["ROLE_ADMIN"])
