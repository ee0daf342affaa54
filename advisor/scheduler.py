import logging
import time

from pyVmomi import vim, vmodl

logger = logging.getLogger('drs_advisor')

TASK_POLL_SECONDS = 2


class MigrationError(Exception):
    pass


class Scheduler:
    """
    Applies recommendations one at a time. Powered-on VMs are live-migrated
    with high priority; powered-off VMs are relocated. Failures are reported
    per VM and never retried.
    """

    def __init__(self, connection_manager, dry_run=False, timeout_seconds=300, max_migrations=0):
        self.connection_manager = connection_manager
        self.dry_run = dry_run
        self.timeout_seconds = timeout_seconds
        self.max_migrations = max_migrations

    def _find_by_name(self, vim_type, name):
        content = self.connection_manager.service_instance.RetrieveContent()
        container = content.viewManager.CreateContainerView(content.rootFolder, [vim_type], True)
        try:
            for obj in container.view:
                if obj.name == name:
                    return obj
        finally:
            container.Destroy()
        return None

    def _wait_for_task(self, task):
        deadline = time.monotonic() + self.timeout_seconds
        while task.info.state in (vim.TaskInfo.State.queued, vim.TaskInfo.State.running):
            if time.monotonic() > deadline:
                raise MigrationError(f"task did not finish within {self.timeout_seconds}s")
            time.sleep(TASK_POLL_SECONDS)
        if task.info.state != vim.TaskInfo.State.success:
            error = task.info.error
            raise MigrationError(getattr(error, 'msg', None) or str(error))

    def migrate(self, rec):
        vm_obj = self._find_by_name(vim.VirtualMachine, rec.vm_name)
        if vm_obj is None:
            raise MigrationError(f"VM '{rec.vm_name}' not found")
        host_obj = self._find_by_name(vim.HostSystem, rec.destination_host)
        if host_obj is None:
            raise MigrationError(f"host '{rec.destination_host}' not found")

        if vm_obj.runtime.powerState == vim.VirtualMachine.PowerState.poweredOn:
            task = vm_obj.MigrateVM_Task(
                host=host_obj,
                priority=vim.VirtualMachine.MovePriority.highPriority
            )
        else:
            spec = vim.vm.RelocateSpec(host=host_obj, pool=host_obj.parent.resourcePool)
            task = vm_obj.RelocateVM_Task(spec=spec)
        self._wait_for_task(task)

    def execute_migrations(self, recommendations):
        """Returns a dict of VM name -> 'success' | 'failed' | 'skipped' | 'dry-run'."""
        results = {}
        if not recommendations:
            logger.info("[Scheduler] No migrations to execute.")
            return results

        executed = 0
        logger.info(f"[Scheduler] Executing {len(recommendations)} recommendation(s){' (dry run)' if self.dry_run else ''}...")
        for rec in recommendations:
            if rec.vm_name in results:
                logger.warning(f"[Scheduler] VM '{rec.vm_name}' already has a recommendation in this batch. Skipping duplicate.")
                continue
            if self.max_migrations and executed >= self.max_migrations:
                logger.warning(f"[Scheduler] Migration limit ({self.max_migrations}) reached. Skipping VM '{rec.vm_name}'.")
                results[rec.vm_name] = 'skipped'
                continue
            executed += 1

            if self.dry_run:
                logger.info(f"[Scheduler] DRY RUN: would move VM '{rec.vm_name}' from '{rec.source_host}' to '{rec.destination_host}' ({rec.reason.value}).")
                results[rec.vm_name] = 'dry-run'
                continue

            try:
                logger.info(f"[Scheduler] Migrating VM '{rec.vm_name}' from '{rec.source_host}' to '{rec.destination_host}' ({rec.reason.value})...")
                self.migrate(rec)
                results[rec.vm_name] = 'success'
                logger.info(f"[Scheduler] SUCCESS: VM '{rec.vm_name}' is now on '{rec.destination_host}'.")
            except (MigrationError, vmodl.MethodFault) as e:
                results[rec.vm_name] = 'failed'
                logger.error(f"[Scheduler] FAILED: VM '{rec.vm_name}' to '{rec.destination_host}': {e}")

        succeeded = sum(1 for status in results.values() if status == 'success')
        failed = sum(1 for status in results.values() if status == 'failed')
        logger.info(f"[Scheduler] Finished: {succeeded} succeeded, {failed} failed, {len(results) - succeeded - failed} not executed.")
        return results
