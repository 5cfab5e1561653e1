"""Tests for the password reset operation."""

import string

import pytest

from src.entraops.engine.models import OperationStatus, WorkItem
from src.entraops.operations.password import (
    SYMBOLS,
    PasswordResetOperation,
    generate_password,
)
from tests.fixtures.graph import FakeGraph


class TestGeneratePassword:
    """Test password generation."""

    @pytest.mark.parametrize("length", [8, 16, 64])
    def test_length_and_character_classes(self, length):
        password = generate_password(length)

        assert len(password) == length
        assert any(c in string.ascii_lowercase for c in password)
        assert any(c in string.ascii_uppercase for c in password)
        assert any(c in string.digits for c in password)
        assert any(c in SYMBOLS for c in password)

    def test_passwords_differ(self):
        assert generate_password() != generate_password()

    @pytest.mark.parametrize("length", [7, 257])
    def test_invalid_length(self, length):
        with pytest.raises(ValueError):
            generate_password(length)


class TestPasswordResetOperation:
    """Test PasswordResetOperation."""

    def test_generated_password(self):
        graph = FakeGraph()
        item = WorkItem("alice@contoso.com", resolved_key="id-alice")

        result = PasswordResetOperation(graph)(item)

        path, kwargs = graph.calls_for("PATCH")[0]
        profile = kwargs["json"]["passwordProfile"]
        assert path == "users/id-alice"
        assert profile["forceChangePasswordNextSignIn"] is True
        assert result.status == OperationStatus.SUCCESS
        assert result.details["PasswordSource"] == "generated"
        assert result.details["NewPassword"] == profile["password"]
        assert len(profile["password"]) == 16

    def test_password_from_input_column(self):
        graph = FakeGraph()
        item = WorkItem(
            "bob@contoso.com",
            raw_record={"UPN": "bob@contoso.com", "New Password": " Winter#2024x "},
        )

        result = PasswordResetOperation(graph, force_change=False)(item)

        _, kwargs = graph.calls_for("PATCH")[0]
        assert kwargs["json"]["passwordProfile"] == {
            "password": "Winter#2024x",
            "forceChangePasswordNextSignIn": False,
        }
        assert result.details["PasswordSource"] == "input"
        assert result.details["NewPassword"] == ""

    def test_password_kept_out_of_report(self):
        result = PasswordResetOperation(FakeGraph(), include_password_in_report=False)(
            WorkItem("alice@contoso.com")
        )
        assert result.details["NewPassword"] == ""
        assert result.details["PasswordSource"] == "generated"

    def test_custom_length(self):
        graph = FakeGraph()
        PasswordResetOperation(graph, password_length=24)(WorkItem("alice@contoso.com"))
        assert len(graph.calls_for("PATCH")[0][1]["json"]["passwordProfile"]["password"]) == 24

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            PasswordResetOperation(FakeGraph(), password_length=4)
