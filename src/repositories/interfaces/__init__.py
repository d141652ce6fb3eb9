from .user_record import IUserRecordRepository
