#!/usr/bin/python
# -*- coding: utf-8 -*-

from __future__ import absolute_import, division, print_function
__metaclass__ = type


ANSIBLE_METADATA = {
    'metadata_version': '0.1',
    'status': ['preview'],
    'supported_by': 'community'
}

DOCUMENTATION = '''
---
module: iso_images
short_description: Resolves ISO images from a catalog, provisions them and publishes them as a fact
version_added: "2.14"
description:
    - Builds the list of ISO images to provide from a static catalog, an enable-list and custom image definitions.
    - Custom images with the name of an enabled catalog entry replace its url but keep its position.
    - Unknown catalog keys, malformed custom images and custom images with duplicate names fail the task
      on the controller before anything is done on the host.
    - The resolved images are handed to the iso_provision module, which downloads and optionally mounts them.
    - On success, the resolved list is published as the fact C(iso_manager_images) for roles that
      render boot menus or install PXE services.
options:
    catalog:
        description:
            - Mapping of catalog keys to a dict with the download url of the image.
            - This parameter can be "magically" provided by defining the variable `iso_catalog`
        required: true
    enabled:
        description:
            - Catalog keys of the images to provide, in menu order.
        required: false
        default: []
    custom:
        description:
            - Additional images, each a dict with name and url, optionally kernel_path and initrd_path.
        required: false
        default: []
    storage_path:
        description:
            - Absolute directory holding the ISO files, every image is stored as <name>.iso.
        default: /var/lib/isos
    mount_root:
        description:
            - Absolute directory below which every image is mounted at <name>/.
        default: /var/lib/iso_mounts
    mount_enabled:
        description:
            - Loop-mount the images read-only.
        default: false
    mount_fstype:
        description:
            - Filesystem type used for the loop mount.
        default: iso9660
    continue_on_error:
        description:
            - Process the remaining images when one fails instead of failing the task.
        default: false
    timeout:
        description:
            - Socket timeout in seconds for downloads.
        default: 60
    validate_certs:
        description:
            - Validate TLS certificates of download urls.
        default: true
author:
    - metal-stack
notes:
    - Presence of the file is the only signal that an image was downloaded, there is no checksum verification.
'''

EXAMPLES = '''
- name: provide iso images
  iso_images:
    catalog: "{{ iso_catalog }}"
    enabled:
      - alpine-3.23
      - ubuntu-24.04
    custom:
      - name: ubuntu-24.04
        url: https://mirror.example.com/isos/ubuntu-24.04.3-live-server-amd64.iso
      - name: netboot-tools
        url: https://mirror.example.com/isos/netboot-tools.iso
        kernel_path: boot/vmlinuz
        initrd_path: boot/initrd.img
    mount_enabled: true

# The expected fact will be:
# {"ansible_facts": {"iso_manager_images": [
#   {"name": "alpine-3.23", "url": "https://dl-cdn.alpinelinux.org/...", "storage_path": "/var/lib/isos/alpine-3.23.iso",
#    "mount_path": "/var/lib/iso_mounts/alpine-3.23/"},
#   {"name": "ubuntu-24.04", "url": "https://mirror.example.com/isos/ubuntu-24.04.3-live-server-amd64.iso", ...},
#   {"name": "netboot-tools", ...}
# ]}}
'''

RETURN = '''
ansible_facts:
  description:
    - iso_manager_images, the ordered list of resolved images with name, url, storage_path and mount_path
      (mount_path only when mounting is enabled)
  returned: success
  type: dict
'''
