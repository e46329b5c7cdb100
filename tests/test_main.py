import pytest
from unittest.mock import patch

from imds_server.config import Settings
from imds_server.main import create_app, run
from imds_server.services.identity_provider import StsIdentityProvider


def test_run_exits_without_role_arn(settings):
    with patch("imds_server.main.get_settings", side_effect=lambda: Settings(_env_file=None)):
        with patch("imds_server.main.uvicorn.run") as mock_run:
            with pytest.raises(SystemExit) as exc:
                run()

    assert exc.value.code == 1
    mock_run.assert_not_called()


def test_run_serves_on_configured_address(settings):
    settings.port = 8080
    with patch("imds_server.main.get_settings", return_value=settings):
        with patch("imds_server.main.uvicorn.run") as mock_run:
            run()

    _, kwargs = mock_run.call_args
    assert kwargs == {"host": "0.0.0.0", "port": 8080}


def test_create_app_defaults_to_sts_provider(settings):
    with patch("imds_server.main.StsIdentityProvider", wraps=StsIdentityProvider) as mock_provider:
        app = create_app(settings)

    mock_provider.assert_called_once_with("default", region_name=None, timeout=30)
    assert app.state.settings is settings
