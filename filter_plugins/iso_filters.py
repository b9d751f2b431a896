from __future__ import (absolute_import, division, print_function)

__metaclass__ = type

import posixpath

from ansible.errors import AnsibleFilterError


def iso_mounted_images(images):
    return [image for image in images if image.get("mount_path")]


def iso_image_by_name(images, name):
    for image in images:
        if image.get("name") == name:
            return image

    raise AnsibleFilterError("no iso image found with name: %s" % name)


def iso_boot_file(image, relative_path):
    mount_path = image.get("mount_path")
    if not mount_path:
        raise AnsibleFilterError("iso image %s is not mounted" % image.get("name"))

    root = posixpath.normpath(mount_path)
    path = posixpath.normpath(posixpath.join(root, relative_path.lstrip("/")))
    if path != root and not path.startswith(root + "/"):
        raise AnsibleFilterError("path %s leaves the mount point of iso image %s" % (relative_path, image.get("name")))

    return path


class FilterModule(object):
    def filters(self):
        return {
            'iso_mounted_images': iso_mounted_images,
            'iso_image_by_name': iso_image_by_name,
            'iso_boot_file': iso_boot_file,
        }
