import mock

from advisor import connection_manager
from advisor.connection_manager import ConnectionManager


@mock.patch.object(connection_manager, 'Disconnect')
@mock.patch.object(connection_manager, 'SmartConnect')
def test_connect_and_disconnect(smart_connect, disconnect):
    manager = ConnectionManager('vc.example', 'admin', 'secret', port=8443)

    assert manager.connect() is smart_connect.return_value
    kwargs = smart_connect.call_args[1]
    assert (kwargs['host'], kwargs['port'], kwargs['user']) == ('vc.example', 8443, 'admin')
    assert kwargs['sslContext'] is not None

    manager.disconnect()
    disconnect.assert_called_once_with(smart_connect.return_value)
    assert manager.service_instance is None


@mock.patch.object(connection_manager, 'SmartConnect')
def test_verified_ssl_uses_default_context(smart_connect):
    ConnectionManager('vc.example', 'admin', 'secret', verify_ssl=True).connect()
    assert smart_connect.call_args[1]['sslContext'] is None


@mock.patch.object(connection_manager, 'Disconnect')
def test_disconnect_without_session_is_noop(disconnect):
    ConnectionManager('vc.example', 'admin', 'secret').disconnect()
    disconnect.assert_not_called()
