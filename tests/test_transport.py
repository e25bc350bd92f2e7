"""
Tests for the paho-mqtt transport wrapper.
"""

from unittest.mock import MagicMock, patch

import pytest

from co2_client.mqtt.transport import Credentials, Endpoint, PahoTransport, generate_client_id


@pytest.fixture
def callbacks():
    return MagicMock(), MagicMock(), MagicMock()


@pytest.fixture
def mock_mqtt():
    with patch("co2_client.mqtt.transport.mqtt") as mock_mqtt:
        client = MagicMock()
        client.is_connected.return_value = False
        client.subscribe.return_value = (mock_mqtt.MQTT_ERR_SUCCESS, 1)
        mock_mqtt.Client.return_value = client
        yield mock_mqtt


class TestConnect:
    """Tests for PahoTransport.connect()."""

    def test_websocket_tls_connect(self, mock_mqtt, callbacks, endpoint, credentials):
        """Test that a wss endpoint configures websockets, TLS and credentials."""
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)

        client = mock_mqtt.Client.return_value
        assert mock_mqtt.Client.call_args.kwargs["transport"] == "websockets"
        assert mock_mqtt.Client.call_args.kwargs["reconnect_on_failure"] is False
        client.ws_set_options.assert_called_once_with(path="/mqtt")
        client.tls_set.assert_called_once()
        client.username_pw_set.assert_called_once_with("esp32-device1", "secret")
        client.connect_async.assert_called_once_with("broker.test", 8884, keepalive=60)
        client.loop_start.assert_called_once()

    def test_plain_tcp_connect(self, mock_mqtt, callbacks):
        transport = PahoTransport(*callbacks)
        transport.connect(
            Endpoint(host="localhost", port=1883, transport="tcp", use_tls=False),
            Credentials(client_id="co2-client-1"),
        )

        client = mock_mqtt.Client.return_value
        client.ws_set_options.assert_not_called()
        client.tls_set.assert_not_called()
        client.username_pw_set.assert_not_called()

    def test_setup_error_reports_failure(self, mock_mqtt, callbacks, endpoint, credentials):
        """Test that an error before the network loop starts is reported, not raised."""
        on_connect, _, _ = callbacks
        mock_mqtt.Client.return_value.tls_set.side_effect = OSError("no CA bundle")

        PahoTransport(*callbacks).connect(endpoint, credentials)

        on_connect.assert_called_once_with(False, "no CA bundle")


class TestCallbacks:
    """Tests for paho callback translation."""

    def test_handshake_result(self, mock_mqtt, callbacks, endpoint, credentials):
        on_connect, _, _ = callbacks
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)

        transport._on_connect(None, None, None, MagicMock(is_failure=False), None)
        transport._on_connect(None, None, None, MagicMock(is_failure=True), None)

        assert [c.args[0] for c in on_connect.call_args_list] == [True, False]

    def test_connect_fail(self, mock_mqtt, callbacks, endpoint, credentials):
        on_connect, _, _ = callbacks
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)

        transport._on_connect_fail(None, None)

        assert on_connect.call_args.args[0] is False

    def test_message_and_loss(self, mock_mqtt, callbacks, endpoint, credentials):
        _, on_message, on_connection_lost = callbacks
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)

        transport._on_message(None, None, MagicMock(payload=b'{"co2_1": 500}'))
        transport._on_disconnect(None, None, None, "Keep alive timeout", None)

        on_message.assert_called_once_with(b'{"co2_1": 500}')
        on_connection_lost.assert_called_once_with("Keep alive timeout")

    def test_no_callbacks_after_disconnect(self, mock_mqtt, callbacks, endpoint, credentials):
        """Test that a released handle stays silent."""
        on_connect, on_message, on_connection_lost = callbacks
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)
        transport.disconnect()

        transport._on_message(None, None, MagicMock(payload=b"{}"))
        transport._on_disconnect(None, None, None, "Normal disconnection", None)

        on_message.assert_not_called()
        on_connection_lost.assert_not_called()


class TestDisconnect:
    def test_disconnect_when_connected(self, mock_mqtt, callbacks, endpoint, credentials):
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)
        client = mock_mqtt.Client.return_value
        client.is_connected.return_value = True

        assert transport.is_connected()
        transport.disconnect()

        client.disconnect.assert_called_once()
        client.loop_stop.assert_called_once()
        assert not transport.is_connected()

    def test_disconnect_when_not_connected_stops_loop(self, mock_mqtt, callbacks, endpoint, credentials):
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)
        client = mock_mqtt.Client.return_value

        transport.disconnect()
        transport.disconnect()

        client.disconnect.assert_not_called()
        client.loop_stop.assert_called_once()

    def test_subscribe(self, mock_mqtt, callbacks, endpoint, credentials):
        transport = PahoTransport(*callbacks)
        transport.connect(endpoint, credentials)

        transport.subscribe("sensors/esp32-co2-01/data", 0)

        mock_mqtt.Client.return_value.subscribe.assert_called_once_with("sensors/esp32-co2-01/data", qos=0)


def test_client_id_format():
    client_id = generate_client_id("mobile-app")

    prefix, suffix = client_id.rsplit("-", 1)
    assert prefix == "mobile-app"
    assert len(suffix) == 8
    assert suffix.isalnum()
