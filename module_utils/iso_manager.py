import os
import shutil
import tempfile

from ansible.module_utils._text import to_native
from ansible.module_utils.urls import fetch_url

FINDMNT_BIN = os.environ.get("FINDMNT_BIN", "findmnt")
MOUNT_BIN = os.environ.get("MOUNT_BIN", "mount")

MOUNT_OPTIONS = ["ro", "loop", "nosuid", "nodev"]
DIRECTORY_MODE = 0o755
FILE_MODE = 0o644
CHUNK_SIZE = 1024 * 1024

PROVISION_SPEC = dict(
    images=dict(type='list', elements='dict', required=False, default=list(), options=dict(
        name=dict(type='str', required=True),
        url=dict(type='str', required=True),
        storage_path=dict(type='str', required=True),
        mount_path=dict(type='str', required=False),
    )),
    storage_path=dict(type='str', required=False, default="/var/lib/isos"),
    mount_root=dict(type='str', required=False, default="/var/lib/iso_mounts"),
    mount_enabled=dict(type='bool', required=False, default=False),
    mount_fstype=dict(type='str', required=False, default="iso9660"),
    continue_on_error=dict(type='bool', required=False, default=False),
    timeout=dict(type='int', required=False, default=60),
    validate_certs=dict(type='bool', required=False, default=True),
)


class ProvisioningError(Exception):
    STAGE = "storage"

    def __init__(self, image, cause, stage=None):
        self.image = image
        self.stage = stage or self.STAGE
        self.cause = cause
        if image:
            msg = "%s failed for image %s: %s" % (self.stage, image, cause)
        else:
            msg = "%s failed: %s" % (self.stage, cause)
        super(ProvisioningError, self).__init__(msg)


class TransportError(ProvisioningError):
    STAGE = "download"


class MountError(ProvisioningError):
    STAGE = "mount"


class ProvisionReport(object):
    def __init__(self):
        self.downloaded = list()
        self.present = list()
        self.mounted = list()
        self.already_mounted = list()
        self.failed_images = list()

    def to_dict(self):
        return dict(
            downloaded=self.downloaded,
            present=self.present,
            mounted=self.mounted,
            already_mounted=self.already_mounted,
            failed_images=self.failed_images,
        )


class Provisioner(object):
    """Makes sure every resolved image is on disk and, if enabled, mounted.

    Every step probes the filesystem first, so running it again with the same
    images neither downloads nor mounts anything.
    """

    def __init__(self, module):
        self._module = module
        self.changed = False
        self.report = ProvisionReport()

        self._images = module.params.get('images') or list()
        self._storage_path = module.params.get('storage_path')
        self._mount_root = module.params.get('mount_root')
        self._mount_enabled = module.params.get('mount_enabled')
        self._mount_fstype = module.params.get('mount_fstype')
        self._continue_on_error = module.params.get('continue_on_error')
        self._timeout = module.params.get('timeout')

    def run(self):
        if not self._images:
            return

        self._ensure_directory(self._storage_path, ProvisioningError)
        if self._mount_enabled:
            self._ensure_directory(self._mount_root, MountError)

        for image in self._images:
            try:
                self._provision(image)
            except ProvisioningError as e:
                if not self._continue_on_error:
                    raise

                self._module.warn("skipping image %s: %s" % (e.image, to_native(e)))
                self.report.failed_images.append(dict(name=e.image, stage=e.stage, msg=to_native(e)))

    def _provision(self, image):
        self._ensure_file(image)

        if self._mount_enabled:
            self._ensure_mount(image)

    def _ensure_directory(self, path, error_cls, image=None):
        if os.path.isdir(path):
            return
        if os.path.lexists(path):
            raise error_cls(image, "%s exists but is not a directory" % path)

        self._module.debug("creating directory %s" % path)
        self.changed = True
        if self._module.check_mode:
            return

        try:
            os.makedirs(path, DIRECTORY_MODE)
            os.chmod(path, DIRECTORY_MODE)
        except OSError as e:
            raise error_cls(image, "unable to create directory %s: %s" % (path, to_native(e)))

    def _ensure_file(self, image):
        name = image['name']
        dest = image['storage_path']

        if os.path.isfile(dest):
            self._module.debug("%s already present at %s, not downloading" % (name, dest))
            self.report.present.append(name)
            return

        self._module.debug("downloading %s from %s to %s" % (name, image['url'], dest))
        self.changed = True
        self.report.downloaded.append(name)
        if self._module.check_mode:
            return

        self._download(name, image['url'], dest)

    def _download(self, name, url, dest):
        rsp, info = fetch_url(self._module, url, timeout=self._timeout)
        status = info.get('status') or -1
        if rsp is None or not 200 <= status < 300:
            if rsp is not None:
                rsp.close()
            raise TransportError(name, "failed to download %s (status %s): %s" % (
                url, info.get('status'), info.get('msg')))

        # partial downloads stay in a hidden file, only complete ones appear at dest
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".%s." % name, suffix=".part", dir=os.path.dirname(dest))
            with os.fdopen(fd, 'wb') as f:
                shutil.copyfileobj(rsp, f, CHUNK_SIZE)
            os.chmod(tmp_path, FILE_MODE)
            os.rename(tmp_path, dest)
        except Exception as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise TransportError(name, "error writing %s to %s: %s" % (url, dest, to_native(e)))
        finally:
            rsp.close()

    def _ensure_mount(self, image):
        name = image['name']
        mount_path = (image.get('mount_path') or os.path.join(self._mount_root, name)).rstrip("/")

        if self._is_mounted(mount_path):
            self._module.debug("%s already mounted at %s" % (name, mount_path))
            self.report.already_mounted.append(name)
            return

        self._ensure_directory(mount_path, MountError, image=name)

        self._module.debug("mounting %s at %s" % (image['storage_path'], mount_path))
        self.changed = True
        self.report.mounted.append(name)
        if self._module.check_mode:
            return

        cmd = [MOUNT_BIN, "-t", self._mount_fstype, "-o", ",".join(MOUNT_OPTIONS), image['storage_path'], mount_path]
        rc, out, err = self._module.run_command(cmd)
        if rc != 0:
            raise MountError(name, "mounting %s at %s returned %d: %s" % (
                image['storage_path'], mount_path, rc, (err or out).strip()))

    def _is_mounted(self, path):
        if not os.path.isdir(path):
            return False
        rc, _, _ = self._module.run_command([FINDMNT_BIN, "--noheadings", "--mountpoint", path])
        return rc == 0
