# domain errors shared by the api and the client
# every error carries the http status the api answers with and a message the shopper can read


class SigmaVieError(Exception):
    status_code = 400
    default_message = 'Yêu cầu không hợp lệ.'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        body = {'success': False, 'message': self.message}
        body.update(self.details)
        return body


class ValidationError(SigmaVieError):
    status_code = 400


class NotFoundError(SigmaVieError):
    status_code = 404
    default_message = 'Không tìm thấy dữ liệu.'


class InsufficientStockError(SigmaVieError):
    status_code = 409

    def __init__(self, available, message=None, **details):
        self.available = available
        message = message or f'Xin lỗi, phân loại này chỉ còn lại {available} sản phẩm.'
        super().__init__(message, available=available, **details)


class VariantNotFoundError(SigmaVieError):
    status_code = 409
    default_message = 'Sản phẩm không có phân loại này.'


class IllegalTransitionError(SigmaVieError):
    status_code = 409

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(
            f'Không thể chuyển đơn hàng từ {current} sang {requested}.',
            current=current,
            requested=requested,
        )


class DuplicateCustomerError(SigmaVieError):
    status_code = 409


class ForbiddenError(SigmaVieError):
    status_code = 403
    default_message = 'Bạn không có quyền thực hiện thao tác này.'
