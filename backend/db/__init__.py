# Database utilities package
from .upsert import insert_or_increment, upsert, insert_ignore
