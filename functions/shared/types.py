# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from enum import StrEnum


class EntityType(StrEnum):
    """The kinds of records that can own a photo reference."""

    USER_PROFILE = "user_profile"
    FAMILY_MEMBER = "family_member"


class CropEditorState(StrEnum):
    EMPTY = "EMPTY"
    LOADING = "LOADING"
    READY = "READY"
    EDITING = "EDITING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PipelineStage(StrEnum):
    """Progress of a confirmed crop session through the upload pipeline."""

    EDITING = "EDITING"
    EXTRACTING = "EXTRACTING"
    OPTIMIZING = "OPTIMIZING"
    UPLOADING = "UPLOADING"
    SYNCING = "SYNCING"
    SUCCESS = "SUCCESS"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    ERROR = "ERROR"


class NotificationKind(StrEnum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"
