from __future__ import annotations

from unittest.mock import MagicMock, patch

from vhdcompact.privilege import is_elevated


@patch("vhdcompact.privilege.sys.platform", "linux")
@patch("vhdcompact.privilege.os.geteuid", return_value=0, create=True)
def test_root_is_elevated(_mock_geteuid):
    assert is_elevated()


@patch("vhdcompact.privilege.sys.platform", "linux")
@patch("vhdcompact.privilege.os.geteuid", return_value=1000, create=True)
def test_user_is_not_elevated(_mock_geteuid):
    assert not is_elevated()


@patch("vhdcompact.privilege.sys.platform", "win32")
@patch("vhdcompact.privilege.ctypes")
def test_windows_admin(mock_ctypes):
    mock_ctypes.windll.shell32.IsUserAnAdmin.return_value = 1
    assert is_elevated()


@patch("vhdcompact.privilege.sys.platform", "win32")
@patch("vhdcompact.privilege.ctypes")
def test_windows_check_failure_is_not_elevated(mock_ctypes):
    mock_ctypes.windll.shell32.IsUserAnAdmin = MagicMock(side_effect=OSError("no shell32"))
    assert not is_elevated()
