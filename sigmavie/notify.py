# outbound notifications for the back office (admin otp codes)
# real email/sms delivery plugs in behind the same send() method; the default just logs

import logging

logger = logging.getLogger(__name__)


class LogNotifier:
    def send(self, channel, recipient, subject, body):
        logger.info('[%s] to=%s subject=%s', channel, recipient, subject)
        return True


def dispatch_otp(notifier, code, emails, phone=None):
    # best effort on every channel, one failing channel does not stop the others
    subject = 'Mã xác thực đăng nhập Sigma Vie'
    body = f'Mã OTP của bạn là {code}. Mã có hiệu lực trong 5 phút.'
    delivered = 0
    targets = [('email', email) for email in emails]
    if phone:
        targets.append(('sms', phone))
    for channel, recipient in targets:
        try:
            if notifier.send(channel, recipient, subject, body):
                delivered += 1
        except Exception:
            logger.exception('otp delivery failed on %s to %s', channel, recipient)
    return delivered
