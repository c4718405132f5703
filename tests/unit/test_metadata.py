"""Unit tests for instance metadata lookups."""

from unittest.mock import Mock, patch

import pytest
import requests

from swarm_bootstrap.exceptions import MetadataError
from swarm_bootstrap.metadata import get_private_ip


def _response(status_code: int, text: str) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    return response


def test_imdsv2_lookup():
    with patch("requests.put", return_value=_response(200, "session-token")), patch(
        "requests.get", return_value=_response(200, "10.0.1.5\n")
    ) as mock_get:
        assert get_private_ip() == "10.0.1.5"

    assert mock_get.call_args[0][0] == "http://169.254.169.254/latest/meta-data/local-ipv4"
    assert mock_get.call_args[1]["headers"] == {"X-aws-ec2-metadata-token": "session-token"}


def test_falls_back_to_imdsv1():
    with patch("requests.put", side_effect=requests.ConnectionError("refused")), patch(
        "requests.get", return_value=_response(200, "10.0.1.6")
    ) as mock_get:
        assert get_private_ip() == "10.0.1.6"

    assert mock_get.call_args[1]["headers"] == {}


def test_unreachable_metadata_service():
    with patch("requests.put", side_effect=requests.ConnectionError("refused")), patch(
        "requests.get", side_effect=requests.ConnectTimeout("timeout")
    ):
        with pytest.raises(MetadataError, match="Failed to query instance metadata"):
            get_private_ip()


def test_empty_metadata_response():
    with patch("requests.put", return_value=_response(403, "")), patch(
        "requests.get", return_value=_response(404, "")
    ):
        with pytest.raises(MetadataError, match="no private IP"):
            get_private_ip()
