from aiogram.fsm.state import State, StatesGroup

class AuthState(StatesGroup):
    waiting_phone = State() # Ждём номер телефона курьера
    waiting_otp = State() # Номер подтверждён бэкендом, ждём код

    # В данных состояния хранится ответ проверки номера
    # staff: dict - id, res_id, mobile_number, mobile_otp
