import os

from mock import MagicMock

ROOT_PATH = os.path.dirname(os.path.abspath(os.path.dirname(__file__)))
MODULE_UTILS_PATH = os.path.join(ROOT_PATH, 'module_utils')
FILTER_PLUGINS_PATH = os.path.join(ROOT_PATH, 'filter_plugins')
ACTION_PLUGINS_PATH = os.path.join(ROOT_PATH, 'action_plugins')


def read_role_file(*parts):
    with open(os.path.join(ROOT_PATH, *parts), 'r') as f:
        return f.read()


def module_mock(check_mode=False, **params):
    """A stand-in for AnsibleModule carrying the given params."""
    m = MagicMock()
    m.check_mode = check_mode
    m.params = dict(
        images=list(),
        storage_path="/var/lib/isos",
        mount_root="/var/lib/iso_mounts",
        mount_enabled=False,
        mount_fstype="iso9660",
        continue_on_error=False,
        timeout=60,
        validate_certs=True,
    )
    m.params.update(params)
    return m
