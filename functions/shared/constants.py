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

# Document store collections and fields.
USERS_COLLECTION = "users"
FAMILY_MEMBERS_COLLECTION = "familyMembers"
FAMILIES_COLLECTION = "families"
PHOTO_FIELD = "profilePicture"
UPDATED_AT_FIELD = "updatedAt"
FAMILY_ID_FIELD = "familyId"
OWNER_ID_FIELD = "ownerId"

# Object store prefixes.
PROFILE_PICTURES_PREFIX = "profile_pictures"
FAMILY_MEMBERS_PREFIX = "family_members"

# Notification topics.
STATUS_TOPIC = "status"
PHOTO_STATUS_TOPIC = "photoStatus"

ACCEPTED_MIME_PREFIX = "image/"
MAX_UPLOAD_BYTES = 15 * 1024 * 1024
