"""Host platform descriptors.

The engine itself is platform-neutral; these helpers describe the OS
scheduler a host integration would register with, and the limits that
platform imposes on periodic work.
"""

from __future__ import annotations

import sys
from enum import Enum

from pybgtasks.models.request import MINIMUM_PERIODIC_INTERVAL_MINUTES


class TaskPlatform(Enum):
    BG_TASK_SCHEDULER = "BGTaskScheduler"
    WORK_MANAGER = "WorkManager"
    WINDOWS_TASK_SCHEDULER = "Task Scheduler"
    SYSTEMD = "systemd"
    LAUNCHD = "launchd"

    @property
    def supports_exact_timing(self) -> bool:
        """Mobile schedulers only offer best-effort windows."""
        return self not in (TaskPlatform.BG_TASK_SCHEDULER, TaskPlatform.WORK_MANAGER)

    def __str__(self) -> str:
        return self.value


class ForegroundServiceType(Enum):
    """Android foreground service type a long-running task declares."""

    DATA_SYNC = "Data Sync"
    MEDIA_PLAYBACK = "Media Playback"
    PHONE_CALL = "Phone Call"
    LOCATION = "Location"
    CONNECTED_DEVICE = "Connected Device"
    MEDIA_PROJECTION = "Media Projection"
    CAMERA = "Camera"
    MICROPHONE = "Microphone"
    HEALTH = "Health"
    REMOTE_MESSAGING = "Remote Messaging"
    SYSTEM_EXEMPTED = "System Exempted"
    SHORT_SERVICE = "Short Service"

    @property
    def requires_permission(self) -> bool:
        """True for types gated behind a runtime permission."""
        return self in (
            ForegroundServiceType.LOCATION,
            ForegroundServiceType.CAMERA,
            ForegroundServiceType.MICROPHONE,
            ForegroundServiceType.MEDIA_PROJECTION,
        )

    def __str__(self) -> str:
        return self.value


class BackgroundMode(Enum):
    """iOS background mode (UIBackgroundModes entry)."""

    AUDIO = "audio"
    LOCATION = "location"
    VOIP = "voip"
    FETCH = "fetch"
    REMOTE_NOTIFICATION = "remote-notification"
    NEWSSTAND_CONTENT = "newsstand-content"
    EXTERNAL_ACCESSORY = "external-accessory"
    BLUETOOTH_CENTRAL = "bluetooth-central"
    BLUETOOTH_PERIPHERAL = "bluetooth-peripheral"
    PROCESSING = "processing"

    @property
    def plist_key(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


def current_platform() -> TaskPlatform:
    if sys.platform == "ios":
        return TaskPlatform.BG_TASK_SCHEDULER
    if sys.platform == "android" or hasattr(sys, "getandroidapilevel"):
        return TaskPlatform.WORK_MANAGER
    if sys.platform == "darwin":
        return TaskPlatform.LAUNCHD
    if sys.platform.startswith("win"):
        return TaskPlatform.WINDOWS_TASK_SCHEDULER
    return TaskPlatform.SYSTEMD


def minimum_periodic_interval() -> int:
    """Minimum periodic interval in minutes."""
    return MINIMUM_PERIODIC_INTERVAL_MINUTES


def is_background_tasks_available() -> bool:
    # The in-process engine runs everywhere an event loop does.
    return True
