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

"""Error kinds raised by the photo pipeline."""


class PhotoPipelineError(Exception):
    """Base class for every photo pipeline failure.

    `kind` is the stable identifier reported to clients and notifications.
    """

    kind = "PhotoPipelineError"


class InvalidFormatError(PhotoPipelineError):
    kind = "InvalidFormat"


class DecodeFailedError(PhotoPipelineError):
    kind = "DecodeFailed"


class ExtractionFailedError(PhotoPipelineError):
    kind = "ExtractionFailed"


class OptimizationFailedError(PhotoPipelineError):
    """Recoverable: the optimizer catches this and falls back to the input."""

    kind = "OptimizationFailed"


class UploadFailedError(PhotoPipelineError):
    kind = "UploadFailed"


class MetadataSyncFailedError(PhotoPipelineError):
    kind = "MetadataSyncFailed"


class SessionNotFoundError(PhotoPipelineError):
    kind = "SessionNotFound"


class SessionBusyError(PhotoPipelineError):
    kind = "SessionBusy"


class InvalidTransitionError(PhotoPipelineError):
    kind = "InvalidTransition"


class EntityNotFoundError(PhotoPipelineError):
    kind = "EntityNotFound"
