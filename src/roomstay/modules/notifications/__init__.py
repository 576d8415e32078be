from roomstay.modules.notifications.mailer import BookingNotifier

__all__ = ["BookingNotifier"]
