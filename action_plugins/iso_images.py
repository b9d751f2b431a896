#!/usr/bin/python
# -*- coding: utf-8 -*-

import os

from collections import namedtuple
from traceback import format_exc
from urllib.parse import urlparse

from ansible.errors import AnsibleActionFail
from ansible.plugins.action import ActionBase
from ansible.module_utils._text import to_native

try:
    from __main__ import display
except ImportError:
    from ansible.utils.display import Display

    display = Display()


FACT_NAME = "iso_manager_images"
PROVISION_MODULE = "iso_provision"
ISO_EXTENSION = ".iso"
ALLOWED_URL_SCHEMES = ("http", "https")


class IsoImageError(Exception):
    """Base class for errors raised while resolving the image list."""


class ConfigurationError(IsoImageError):
    pass


class UnknownCatalogKeyError(ConfigurationError):
    def __init__(self, key):
        self.key = key
        super(UnknownCatalogKeyError, self).__init__("unknown catalog key: %s" % key)


class InvalidCustomImageError(ConfigurationError):
    def __init__(self, index, reason):
        self.index = index
        super(InvalidCustomImageError, self).__init__("invalid custom image at index %d: %s" % (index, reason))


class DuplicateCustomImageError(IsoImageError):
    def __init__(self, name):
        self.name = name
        super(DuplicateCustomImageError, self).__init__("custom image %s is defined more than once" % name)


def is_valid_url(url):
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ALLOWED_URL_SCHEMES and bool(parsed.netloc) and parsed.path not in ("", "/")


def is_valid_name(name):
    # names become a single path component below storage and mount roots
    if not isinstance(name, str) or not name.strip():
        return False
    return "/" not in name and "\0" not in name and name not in (".", "..")


class Catalog(object):
    """Read-only mapping of catalog keys to download urls."""

    def __init__(self, entries):
        if not isinstance(entries, dict) or not entries:
            raise ConfigurationError("the image catalog must be a non-empty dict")

        self._urls = dict()
        for key, entry in entries.items():
            url = entry.get("url") if isinstance(entry, dict) else entry
            if not is_valid_url(url):
                raise ConfigurationError("catalog entry %s has no valid url" % key)
            self._urls[key] = url

    def lookup(self, key):
        try:
            return self._urls[key]
        except KeyError:
            raise UnknownCatalogKeyError(key) from None

    def keys(self):
        return list(self._urls.keys())

    def __contains__(self, key):
        return key in self._urls

    def __len__(self):
        return len(self._urls)


CustomImage = namedtuple("CustomImage", ["name", "url", "kernel_path", "initrd_path"])


def validate_custom_images(entries):
    """Validates user supplied image definitions.

    Fails on the first malformed entry, nothing is skipped silently.
    """
    if entries is None:
        return list()
    if not isinstance(entries, list):
        raise ConfigurationError("custom images must be a list")

    images = list()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise InvalidCustomImageError(index, "entry must be a dict")

        name = entry.get("name")
        if not is_valid_name(name):
            raise InvalidCustomImageError(index, "name must be a non-empty string usable as a file name")

        url = entry.get("url")
        if not is_valid_url(url):
            raise InvalidCustomImageError(index, "url of %s must be an http(s) url with host and path" % name)

        for optional in ("kernel_path", "initrd_path"):
            value = entry.get(optional)
            if value is not None and not isinstance(value, str):
                raise InvalidCustomImageError(index, "%s of %s must be a string" % (optional, name))

        images.append(CustomImage(name=name, url=url,
                                  kernel_path=entry.get("kernel_path"),
                                  initrd_path=entry.get("initrd_path")))

    return images


class Settings(namedtuple("Settings", ["storage_path", "mount_root", "mount_enabled"])):
    __slots__ = ()

    @classmethod
    def from_args(cls, args):
        settings = cls(storage_path=args.get("storage_path"),
                       mount_root=args.get("mount_root"),
                       mount_enabled=bool(args.get("mount_enabled")))

        if not settings.storage_path or not os.path.isabs(settings.storage_path):
            raise ConfigurationError("storage_path must be an absolute path")
        if settings.mount_enabled and (not settings.mount_root or not os.path.isabs(settings.mount_root)):
            raise ConfigurationError("mount_root must be an absolute path when mounting is enabled")

        return settings


class ResolvedImage(namedtuple("ResolvedImage", ["name", "url", "storage_path", "mount_path"])):
    __slots__ = ()

    def to_dict(self):
        result = dict(
            name=self.name,
            url=self.url,
            storage_path=self.storage_path,
        )
        if self.mount_path is not None:
            result["mount_path"] = self.mount_path
        return result


class Resolver(object):
    def __init__(self, catalog, settings):
        self._catalog = catalog
        self._settings = settings

    def resolve(self, enabled, custom):
        custom = validate_custom_images(custom)

        custom_by_name = dict()
        for image in custom:
            if image.name in custom_by_name:
                raise DuplicateCustomImageError(image.name)
            custom_by_name[image.name] = image

        entries = list()
        seen = set()
        for key in enabled or list():
            url = self._catalog.lookup(key)
            if key in seen:
                continue
            seen.add(key)

            override = custom_by_name.get(key)
            if override is not None:
                display.vvv("custom image %s overrides catalog url %s with %s" % (key, url, override.url))
                url = override.url

            entries.append((key, url))

        for image in custom:
            if image.name in seen:
                continue
            seen.add(image.name)
            entries.append((image.name, image.url))

        return [self._annotate(name, url) for name, url in entries]

    def _annotate(self, name, url):
        mount_path = None
        if self._settings.mount_enabled:
            mount_path = os.path.join(self._settings.mount_root, name) + "/"

        return ResolvedImage(
            name=name,
            url=url,
            storage_path=os.path.join(self._settings.storage_path, name + ISO_EXTENSION),
            mount_path=mount_path,
        )


def publish(images):
    return {FACT_NAME: [image.to_dict() for image in images]}


class ActionModule(ActionBase):
    def run(self, tmp=None, task_vars=None):
        if task_vars is None:
            task_vars = dict()

        result = super(ActionModule, self).run(tmp, task_vars)
        del tmp  # tmp no longer has any effect

        self._supports_check_mode = True

        if task_vars.get("iso_catalog") is not None:
            self._task.args.setdefault("catalog", task_vars.get("iso_catalog"))

        try:
            _, task_args = self._validate_module_args()
        except AnsibleActionFail as e:
            result.update(e.result)
            return result

        task_args = self._templar.template(task_args)

        try:
            settings = Settings.from_args(task_args)
            images = Resolver(catalog=Catalog(task_args.get("catalog")), settings=settings).resolve(
                task_args.get("enabled"), task_args.get("custom"))
        except IsoImageError as e:
            result["failed"] = True
            result["msg"] = "error resolving iso images"
            result["error"] = to_native(e)
            result["traceback"] = format_exc()
            return result

        display.vvv("- Resolved %d iso image(s): %s" % (len(images), ", ".join(i.name for i in images)))

        module_args = dict(
            images=[image.to_dict() for image in images],
            storage_path=settings.storage_path,
            mount_root=task_args.get("mount_root"),
            mount_enabled=settings.mount_enabled,
            mount_fstype=task_args.get("mount_fstype"),
            continue_on_error=task_args.get("continue_on_error"),
            timeout=task_args.get("timeout"),
            validate_certs=task_args.get("validate_certs"),
        )

        module_result = self._execute_module(module_name=PROVISION_MODULE, module_args=module_args,
                                             task_vars=task_vars)
        result.update(module_result)

        if result.get("failed"):
            return result

        # images skipped in best-effort mode are not handed to consumers
        failed = set(i.get("name") for i in module_result.get("failed_images") or list())
        if failed:
            display.warning("Not publishing failed iso image(s): %s" % ", ".join(sorted(failed)))

        result["ansible_facts"] = publish([image for image in images if image.name not in failed])

        return result

    def _validate_module_args(self):
        return self.validate_argument_spec(
            argument_spec=dict(
                catalog=dict(type='dict', required=True),
                enabled=dict(type='list', elements='str', required=False, default=list()),
                custom=dict(type='list', required=False, default=list()),
                storage_path=dict(type='str', required=False, default="/var/lib/isos"),
                mount_root=dict(type='str', required=False, default="/var/lib/iso_mounts"),
                mount_enabled=dict(type='bool', required=False, default=False),
                mount_fstype=dict(type='str', required=False, default="iso9660"),
                continue_on_error=dict(type='bool', required=False, default=False),
                timeout=dict(type='int', required=False, default=60),
                validate_certs=dict(type='bool', required=False, default=True),
            ))
