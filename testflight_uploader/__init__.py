"""testflight-uploader: publish iOS/macOS builds to App Store Connect and TestFlight."""

__version__ = "0.3.0"
