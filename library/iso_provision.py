#!/usr/bin/python
# -*- coding: utf-8 -*-

from __future__ import absolute_import, division, print_function
__metaclass__ = type

from ansible.module_utils.basic import AnsibleModule
from ansible.module_utils._text import to_native
from ansible.module_utils.iso_manager import PROVISION_SPEC, Provisioner, ProvisioningError

ANSIBLE_METADATA = {
    'metadata_version': '0.1',
    'status': ['preview'],
    'supported_by': 'community'
}

DOCUMENTATION = '''
---
module: iso_provision

short_description: Downloads ISO images and loop-mounts them read-only

version_added: "2.14"

description:
    - Makes sure every given image is present at its storage path and, if mounting is enabled,
      mounted read-only through a loop device at its mount path.
    - Files that are already present are never downloaded again, mount points that are already
      mounted are left alone.
    - Usually invoked by the iso_images action, which resolves the image list on the controller.
    - Requires findmnt and mount on the target host.

options:
    images:
        description:
            - The resolved images, each with name, url, storage_path and optionally mount_path.
        required: false
        default: []
    storage_path:
        description:
            - Directory holding the downloaded ISO files.
        default: /var/lib/isos
    mount_root:
        description:
            - Directory below which the images are mounted.
        default: /var/lib/iso_mounts
    mount_enabled:
        description:
            - Loop-mount every image read-only below I(mount_root).
        default: false
    mount_fstype:
        description:
            - Filesystem type used for the loop mount.
        default: iso9660
    continue_on_error:
        description:
            - Keep going with the next image when an image fails to download or mount.
            - Failed images are reported in C(failed_images) instead of failing the task.
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
'''

EXAMPLES = '''
- name: download and mount alpine
  iso_provision:
    mount_enabled: true
    images:
      - name: alpine-3.23
        url: https://dl-cdn.alpinelinux.org/alpine/v3.23/releases/x86_64/alpine-standard-3.23.0-x86_64.iso
        storage_path: /var/lib/isos/alpine-3.23.iso
        mount_path: /var/lib/iso_mounts/alpine-3.23/
'''

RETURN = '''
downloaded:
  description:
    - names of the images downloaded in this run
  returned: always
  type: list
  sample: ["alpine-3.23"]
present:
  description:
    - names of the images that were already on disk
  returned: always
  type: list
mounted:
  description:
    - names of the images mounted in this run
  returned: always
  type: list
already_mounted:
  description:
    - names of the images that were already mounted
  returned: always
  type: list
failed_images:
  description:
    - images that failed when continue_on_error is set, with name, stage and msg
  returned: always
  type: list
'''


def main():
    module = AnsibleModule(
        argument_spec=PROVISION_SPEC,
        supports_check_mode=True,
    )

    provisioner = Provisioner(module)

    try:
        provisioner.run()
    except ProvisioningError as e:
        module.fail_json(msg=to_native(e), image=e.image, stage=e.stage,
                         changed=provisioner.changed, **provisioner.report.to_dict())

    result = dict(
        changed=provisioner.changed,
    )
    result.update(provisioner.report.to_dict())

    module.exit_json(**result)


if __name__ == '__main__':
    main()
