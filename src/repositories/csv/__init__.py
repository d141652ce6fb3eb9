from .csv_user_record_repository import CsvUserRecordRepository
