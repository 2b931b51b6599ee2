# tests/test_main.py
"""
Тесты для точки входа main.py.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

import main
from src.common.constants import UserRole
from src.core.auth.tokens import get_token_verifier


class TestModes:
    """Режимы запуска."""

    def test_valid_modes_are_server_modes(self) -> None:
        """dev_token обрабатывается до запуска event loop и не является режимом сервера."""
        assert main.VALID_MODES == ("realtime_gateway",)

    @pytest.mark.asyncio
    async def test_unknown_mode_logged(self) -> None:
        with patch.object(main, "setup_logging"), \
                patch.object(main, "setup_signal_handlers"), \
                patch.object(main, "log_info", new_callable=AsyncMock), \
                patch.object(main, "log_error", new_callable=AsyncMock) as mock_error, \
                patch.object(main, "run_realtime_gateway", new_callable=AsyncMock) as mock_run:
            await main.main("carrier_pigeon")

        mock_run.assert_not_called()
        assert "carrier_pigeon" in mock_error.call_args.args[0]

    @pytest.mark.asyncio
    async def test_realtime_gateway_mode_runs_server(self) -> None:
        with patch.object(main, "setup_logging"), \
                patch.object(main, "setup_signal_handlers"), \
                patch.object(main, "log_info", new_callable=AsyncMock), \
                patch.object(main, "run_realtime_gateway", new_callable=AsyncMock) as mock_run:
            await main.main("realtime_gateway")

        mock_run.assert_awaited_once()


class TestIssueDevToken:
    """Тесты для issue_dev_token."""

    def test_token_is_accepted_by_verifier(self) -> None:
        token = main.issue_dev_token("u-vendor-1", "VENDOR")

        auth = get_token_verifier().verify_token(token)

        assert auth is not None
        assert auth.user_id == "u-vendor-1"
        assert auth.role == UserRole.VENDOR

    def test_token_without_role(self) -> None:
        auth = get_token_verifier().verify_token(main.issue_dev_token("u-1"))

        assert auth is not None
        assert auth.role is None
