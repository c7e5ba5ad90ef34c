"""Guest-side recipe payload and launcher script templates.

The guest scripts are delivered to the installer verbatim; the driver only
fills in the parameter files they source.
"""

from __future__ import annotations

import shlex
from typing import Dict, Mapping

from provisioner.constants import DISK_IMAGE_NAME, QEMU_BINARY, RUN_MONITOR_PORT, VNC_DISPLAY
from provisioner.models import Acceleration, CapabilityRecord, RecipeParameters

ENTRY_SCRIPT = r"""#!/bin/bash
set -e -u -o pipefail

. vars

export TERM=xterm-256color

STEP=1

function info () {
    echo -e "$(tput setaf 11)Step ${STEP}$(tput setaf 230) => $(tput setaf 11)${1}$(tput sgr0)"
    ((STEP++))
}

DISK=/dev/vda

info "Start ntp"
timedatectl set-ntp true

info "Partition ${DISK}"
wipefs -af ${DISK}
sgdisk --zap-all ${DISK}
sgdisk -n 1:0:+512M -t 1:ef00 -n 2:0:0 -t 2:8e00 ${DISK}
partx -u ${DISK}
wipefs -af ${DISK}1
wipefs -af ${DISK}2

info "LVM volumes"
pvcreate ${DISK}2
vgcreate vg ${DISK}2
lvcreate -L "${SWAP}G" vg -n swap
lvcreate -l 100%FREE vg -n root

info "Filesystems"
mkfs.fat -F32 ${DISK}1 > /dev/null
mkfs.ext4 -F /dev/vg/root > /dev/null
mkswap /dev/vg/swap
swapon /dev/vg/swap
mount /dev/vg/root /mnt
mkdir /mnt/efi && mount ${DISK}1 /mnt/efi

info "pacstrap"
pacman -Syy
if ! pacstrap /mnt base linux; then
    echo "$(tput setaf 196)Couldn't install the base system, bailing out.$(tput sgr0)"
    exit 1
fi
genfstab -U /mnt >> /mnt/etc/fstab

cp install-vars /mnt
cat <<'EOF' > /mnt/moreinst.sh
#!/bin/bash
set -e -u -o pipefail

. install-vars

STEP=1

function info () {
    echo -e "$(tput setaf 48)Step ${STEP}$(tput setaf 230) => $(tput setaf 48)${1}$(tput sgr0)"
    ((STEP++))
}

info "Locale and clock"
ln -sf /usr/share/zoneinfo/UTC /etc/localtime
hwclock --systohc
sed -i 's/#en_US.UTF-8/en_US.UTF-8/' /etc/locale.gen
locale-gen
echo "LANG=en_US.UTF-8" > /etc/locale.conf

info "Hostname ${HOSTNAME}"
echo "${HOSTNAME}" > /etc/hostname

info "Packages"
pacman --noconfirm -Syu
pacman --noconfirm -S dhcpcd efibootmgr grub lvm2 openssh sudo vim qemu-guest-agent

info "Boot loader"
grub-install --target=x86_64-efi --efi-directory=/efi --bootloader-id=GRUB > /dev/null
grub-mkconfig -o /boot/grub/grub.cfg > /dev/null
sed -i '/^HOOKS=/ s/block file/block lvm2 file/' /etc/mkinitcpio.conf
mkinitcpio -P > /dev/null

info "Services"
systemctl enable dhcpcd sshd qemu-guest-agent
sed -i 's/#PermitRootLogin prohibit-password/PermitRootLogin no/' /etc/ssh/sshd_config
sed -i 's/#PasswordAuthentication yes/PasswordAuthentication no/' /etc/ssh/sshd_config
echo "\4" >> /etc/issue

info "User ${USERNAME}"
useradd -m -G wheel "${USERNAME}"
usermod -p "${USER_PASSWORD_HASH}" "${USERNAME}"
mkdir -m 700 /home/"${USERNAME}"/.ssh
echo "${USER_SSH_KEY}" > /home/"${USERNAME}"/.ssh/authorized_keys
chown -R "${USERNAME}":"${USERNAME}" /home/"${USERNAME}"
sed -i '/NOPASSWD/s/^#.//g' /etc/sudoers
passwd -l root

rm moreinst.sh install-vars
EOF

chmod 755 /mnt/moreinst.sh
arch-chroot /mnt ./moreinst.sh

echo -e "$(tput setaf 11)Install done, shutting down.$(tput sgr0)"
sleep 2
umount x || true
shutdown -h now
"""

RUN_SCRIPT_TEMPLATE = """\
#!/bin/bash

ACCEL={accel}
CPU={cpu}
VNC={vnc}
MONITOR="vc"

if [[ -n $VNC ]]; then
    echo "Running headless, VNC server on localhost{vnc_display}, monitor on localhost:{monitor_port}"
    MONITOR="telnet:localhost:{monitor_port},server,nowait"
fi

cd "$(dirname "$0")"

{qemu} \\
    -name arch \\
    -nodefaults \\
    -monitor ${{MONITOR}} \\
    -machine type=q35,accel=${{ACCEL}} \\
    ${{CPU}} \\
    -m {memory} \\
    -device virtio-rng-pci \\
    -device virtio-gpu \\
    -device qemu-xhci,id=xhci \\
    -device usb-tablet \\
    -drive id=disk0,if=virtio,format=raw,file={disk},media=disk \\
    -drive media=cdrom \\
    -netdev user,id=net0 \\
    -device virtio-net-pci,id=nic0,netdev=net0 \\
    ${{VNC}} \\
    -drive if=pflash,format=raw,readonly=on,file=OVMF_CODE.fd \\
    -drive if=pflash,format=raw,file=OVMF_VARS.fd
"""


def render_vars(values: Mapping[str, object]) -> str:
    """Render KEY=value lines, quoted so the guest shell reads them intact."""
    return "".join(f"{key}={shlex.quote(str(value))}\n" for key, value in values.items())


def vars_file(params: RecipeParameters) -> str:
    return render_vars({"SWAP": params.swap_size_gb})


def install_vars_file(params: RecipeParameters) -> str:
    values: Dict[str, object] = {
        "HOSTNAME": params.hostname,
        "USERNAME": params.username,
        "USER_SSH_KEY": params.ssh_public_key,
        "USER_PASSWORD_HASH": params.password_hash,
    }
    return render_vars(values)


def cpu_flags(caps: CapabilityRecord) -> str:
    """``-cpu host`` needs KVM; HVF and TCG keep QEMU's default model."""
    if caps.acceleration is Acceleration.NATIVE and not caps.is_darwin:
        return "-cpu host"
    return ""


def render_run_script(caps: CapabilityRecord, headless: bool, memory_mb: int) -> str:
    vnc = f"-vnc {VNC_DISPLAY}" if headless else ""
    return RUN_SCRIPT_TEMPLATE.format(
        accel=shlex.quote(caps.accel_name),
        cpu=shlex.quote(cpu_flags(caps)),
        vnc=shlex.quote(vnc),
        vnc_display=VNC_DISPLAY,
        monitor_port=RUN_MONITOR_PORT,
        qemu=QEMU_BINARY,
        memory=memory_mb,
        disk=DISK_IMAGE_NAME,
    )
