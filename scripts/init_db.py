#!/usr/bin/env python3
"""
Script para criar as tabelas do motor de revisões
"""
from sqlalchemy import inspect

from database.models import Base
from database.repos import engine

EXPECTED_TABLES = ("profiles", "srs_items", "review_events")

if __name__ == "__main__":
    print("🔧 Criando tabelas...")
    Base.metadata.create_all(engine)

    tables = inspect(engine).get_table_names()
    for table in EXPECTED_TABLES:
        if table in tables:
            print(f"✅ Tabela '{table}' existe.")
        else:
            print(f"❌ Tabela '{table}' NÃO foi criada.")
