from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from safeprag.core.errors import SafepragError
from safeprag.data.backup import cleanup_system_data, read_backup_file, restore_backup, write_backup_file
from safeprag.data.catalogs import load_retention_policy
from safeprag.data.db import Db
from safeprag.data.pruning import usage_report
from safeprag.data.store import SqliteStore
from safeprag.logging_conf import configure_logging
from safeprag.orders.documents import DocumentArchive
from safeprag.orders.export import export_orders_xlsx, order_rows
from safeprag.orders.lifecycle import ServiceOrderManager
from safeprag.settings import Settings, default_db_path

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="safeprag", description="Ordens de serviço SafePrag")
    parser.add_argument("--db", type=Path, default=None, help="Arquivo sqlite (padrão: db/safeprag.db)")
    parser.add_argument("--log-level", type=str, default="INFO")

    sub = parser.add_subparsers(dest="command", required=True)

    p_backup = sub.add_parser("backup", help="Gera backup JSON de todos os dados")
    p_backup.add_argument("--out", type=Path, default=Path("."))

    p_restore = sub.add_parser("restore", help="Restaura um backup JSON")
    p_restore.add_argument("file", type=Path)

    p_cleanup = sub.add_parser("cleanup", help="Remove todos os dados do sistema")
    p_cleanup.add_argument("--yes", action="store_true", help="Confirma a limpeza irreversível")

    sub.add_parser("finish-all", help="Finaliza todas as OS em andamento")

    p_orders = sub.add_parser("orders", help="Lista ordens de serviço")
    p_orders.add_argument("--number", type=str, default=None)
    p_orders.add_argument("--client", type=str, default=None)
    p_orders.add_argument("--from", dest="start_date", type=str, default=None)
    p_orders.add_argument("--to", dest="end_date", type=str, default=None)

    p_export = sub.add_parser("export", help="Exporta ordens de serviço para Excel")
    p_export.add_argument("file", type=Path)

    p_reconcile = sub.add_parser("reconcile", help="Atualiza status dos agendamentos de uma data")
    p_reconcile.add_argument("--date", type=str, default=None)

    sub.add_parser("usage", help="Mostra o uso do armazenamento")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    settings = Settings(db_path=args.db or default_db_path(), log_level=args.log_level)
    configure_logging(settings.log_level)

    db = Db(settings.db_path)
    db.ensure_schema()
    store = SqliteStore(db)
    policy = load_retention_policy(store, settings.retention)
    manager = ServiceOrderManager(store, policy=policy)
    archive = DocumentArchive(store, clock=manager.clock, max_age_days=policy.document_max_age_days)

    try:
        if args.command == "backup":
            path = write_backup_file(store, args.out, clock=manager.clock)
            db.log_audit("BACKUP", f"Backup gerado {path.name}")
            print(path)
        elif args.command == "restore":
            written = restore_backup(store, read_backup_file(args.file))
            db.log_audit("BACKUP", f"Restaurado {args.file.name}", ", ".join(written))
            print(f"{len(written)} chaves restauradas")
        elif args.command == "cleanup":
            if not args.yes:
                print("Use --yes para confirmar a limpeza irreversível", file=sys.stderr)
                return 2
            cleanup_system_data(store, manager.events)
            db.log_audit("SYSTEM", "Limpeza completa dos dados")
        elif args.command == "finish-all":
            finished = manager.finish_all_active_service_orders()
            db.log_audit("ORDERS", f"Finalizadas {len(finished)} OS em andamento", ", ".join(finished))
            print(f"{len(finished)} ordens finalizadas")
        elif args.command == "orders":
            rows = order_rows(
                manager,
                archive,
                order_number=args.number,
                client_name=args.client,
                start_date=args.start_date,
                end_date=args.end_date,
            )
            for row in rows:
                print(json.dumps(row, ensure_ascii=False))
        elif args.command == "export":
            args.file.write_bytes(export_orders_xlsx(order_rows(manager, archive)))
            print(args.file)
        elif args.command == "reconcile":
            changed = manager.reconcile_schedules(args.date)
            print(f"{len(changed)} agendamentos atualizados")
        elif args.command == "usage":
            print(json.dumps(usage_report(store), ensure_ascii=False, indent=2))
    except SafepragError as exc:
        logger.error("%s", exc)
        print(str(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
