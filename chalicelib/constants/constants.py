from decimal import Decimal

DEFAULT_BASE_FEE = Decimal('5.00')
DEFAULT_PRICE_PER_KM = Decimal('2.00')
DEFAULT_MIN_DISTANCE_INCLUDED = Decimal('2')

DEFAULT_DELIVERY_FEE = Decimal('5.00')
DEFAULT_AVERAGE_PREP_TIME = 30
DEFAULT_ESTIMATED_DELIVERY_TIME = 45

EARTH_RADIUS_KM = 6371
FALLBACK_SPEED_KMH = 30
FALLBACK_TRAVEL_TIME = 20
ETA_BUFFER_MINUTES = 10

PIX_EXPIRATION_MINUTES = 5
DEFAULT_PAYMENT_TIMEOUT_MINUTES = 30
DEFAULT_PAYER_EMAIL = 'cliente@delivery.com'

ORDER_NUMBER_COUNTER = 'order_number'
CASH_REGISTER_HISTORY_LIMIT = 10

MONEY = Decimal('0.01')
