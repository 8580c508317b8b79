#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
MeetingId = str
RoomKey = str
RawRecord = dict
SignalName = str
