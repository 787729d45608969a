from peewee import (
    AutoField,
    CharField,
)
from db.base import BaseModel


class Team(BaseModel):
    id = AutoField(primary_key=True)
    name = CharField(max_length=100)

    class Meta:
        table_name = "teams"

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}')>"
