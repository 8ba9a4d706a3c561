"""
Media profile for the webrtcbin pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

PLAYBACK_CHAINS: Dict[str, str] = {
    "video": "rtpvp8depay ! vp8dec ! videoconvert ! videoscale ! autovideosink",
    "audio": "rtpopusdepay ! opusdec ! audioconvert ! audioresample ! autoaudiosink",
}


@dataclass
class MediaProfile:
    """
    Parameters for the send/receive pipeline around ``webrtcbin``.

    Local video is VP8 and local audio Opus; a tee feeds an optional self-view
    sink.  Incoming tracks are decoded with :data:`PLAYBACK_CHAINS`.
    """

    webrtc_name: str = "sendrecv"
    bundle_policy: str = "max-bundle"
    stun_server: Optional[str] = "stun://stun.l.google.com:19302"
    turn_server: Optional[str] = None
    video_source: Optional[str] = "videotestsrc pattern=ball is-live=true"
    audio_source: Optional[str] = "audiotestsrc wave=red-noise is-live=true"
    self_view: bool = True
    extra_properties: Dict[str, object] = field(default_factory=dict)

    def iter_webrtc_properties(self) -> Dict[str, object]:
        """
        Return the flattened property map applied to the webrtcbin instance.
        """

        props: Dict[str, object] = dict(self.extra_properties)
        props["bundle-policy"] = self.bundle_policy
        if self.stun_server:
            props["stun-server"] = self.stun_server
        if self.turn_server:
            props["turn-server"] = self.turn_server
        return props

    def describe(self) -> str:
        """
        Render the ``gst-launch`` style description of the whole pipeline.
        """

        name = self.webrtc_name
        props = " ".join(f"{key}={value}" for key, value in self.iter_webrtc_properties().items())
        parts = [f"webrtcbin name={name} {props}".rstrip()]
        if self.video_source:
            if self.self_view:
                parts.append(
                    f"{self.video_source} ! videoconvert ! tee name=t "
                    "t. ! queue ! autovideosink "
                    f"t. ! queue ! vp8enc deadline=1 ! rtpvp8pay ! {name}."
                )
            else:
                parts.append(
                    f"{self.video_source} ! videoconvert ! queue ! vp8enc deadline=1 ! rtpvp8pay ! {name}."
                )
        if self.audio_source:
            parts.append(
                f"{self.audio_source} ! audioconvert ! queue ! opusenc ! rtpopuspay ! {name}."
            )
        return " ".join(parts)

    @staticmethod
    def playback_chain(kind: str) -> Optional[str]:
        return PLAYBACK_CHAINS.get(kind)
