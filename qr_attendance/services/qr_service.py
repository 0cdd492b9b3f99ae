"""QR Code image rendering service."""
import base64
import io

import qrcode


class QRService:
    """Service for QR code operations."""

    @staticmethod
    def render(token: str) -> str:
        """
        Render a session token as a QR image.
        Returns: PNG data URL
        """
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=2,
        )
        qr.add_data(token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
